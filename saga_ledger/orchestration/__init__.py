from saga_ledger.orchestration.errors import error_to_dict, handle_service_error, is_benign, raise_normalized
from saga_ledger.orchestration.infrastructure.aiohttp_webhook_sender import AiohttpWebhookSender
from saga_ledger.orchestration.interfaces import (
    IEmailSender, IEventService, IMoneyTransferService, IReserveService, ITransactionRepository, IWebhookSender,
)
from saga_ledger.orchestration.services.delivery import DeliveryService
from saga_ledger.orchestration.services.notification import NotificationService
from saga_ledger.orchestration.services.seat_reservation import SeatReservationService
from saga_ledger.orchestration.tasks import make_registry

__all__ = (
    'AiohttpWebhookSender',
    'DeliveryService',
    'IEmailSender',
    'IEventService',
    'IMoneyTransferService',
    'IReserveService',
    'ITransactionRepository',
    'IWebhookSender',
    'NotificationService',
    'SeatReservationService',
    'error_to_dict',
    'handle_service_error',
    'is_benign',
    'make_registry',
    'raise_normalized',
)
