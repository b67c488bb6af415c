"""Task handlers, one per ``TaskName``.

A handler maps the task payload to an operation; the executor runs the
operation against the process-wide ``TaskSettings``. Each operation opens
its own session so every saga step commits on its own.
"""
from saga_ledger.action.domain.model import ActionAttributes
from saga_ledger.orchestration.errors import raise_normalized
from saga_ledger.orchestration.services.delivery import DeliveryService
from saga_ledger.orchestration.services.notification import NotificationService
from saga_ledger.orchestration.services.seat_reservation import SeatReservationService
from saga_ledger.task.domain.model import TaskName
from saga_ledger.task.domain.registry import ITaskOperation, TaskHandlerRegistry
from saga_ledger.task.domain.settings import TaskSettings

__all__ = (
    "cancel_seat_reservation",
    "aggregate_event_reservations",
    "give_point_award",
    "return_point_award",
    "send_order",
    "send_email_message",
    "trigger_webhook",
    "make_registry",
)


def cancel_seat_reservation(data: dict) -> ITaskOperation:
    async def operation(settings: TaskSettings):
        async with settings.session_pool.session() as session:
            return await SeatReservationService(settings).void_transaction(session, data['purpose'])
    return operation


def aggregate_event_reservations(data: dict) -> ITaskOperation:
    async def operation(settings: TaskSettings):
        event_service = settings.require('event_service')
        try:
            await event_service.aggregate_reservations(data['id'])
        except Exception as e:
            raise_normalized(e)
    return operation


def give_point_award(data: dict) -> ITaskOperation:
    async def operation(settings: TaskSettings):
        async with settings.session_pool.session() as session:
            return await DeliveryService(settings).give_point_award(session, ActionAttributes.from_state(data))
    return operation


def return_point_award(data: dict) -> ITaskOperation:
    async def operation(settings: TaskSettings):
        async with settings.session_pool.session() as session:
            return await DeliveryService(settings).return_point_award(session, ActionAttributes.from_state(data))
    return operation


def send_order(data: dict) -> ITaskOperation:
    async def operation(settings: TaskSettings):
        async with settings.session_pool.session() as session:
            return await DeliveryService(settings).send_order(session, ActionAttributes.from_state(data))
    return operation


def send_email_message(data: dict) -> ITaskOperation:
    async def operation(settings: TaskSettings):
        attributes = ActionAttributes.from_state(data['action_attributes'])
        async with settings.session_pool.session() as session:
            return await NotificationService(settings).send_email_message(session, attributes)
    return operation


def trigger_webhook(data: dict) -> ITaskOperation:
    async def operation(settings: TaskSettings):
        async with settings.session_pool.session() as session:
            return await NotificationService(settings).trigger_webhook(session, ActionAttributes.from_state(data))
    return operation


def make_registry() -> TaskHandlerRegistry:
    registry = TaskHandlerRegistry({
        TaskName.CANCEL_SEAT_RESERVATION: cancel_seat_reservation,
        TaskName.AGGREGATE_EVENT_RESERVATIONS: aggregate_event_reservations,
        TaskName.GIVE_POINT_AWARD: give_point_award,
        TaskName.RETURN_POINT_AWARD: return_point_award,
        TaskName.SEND_ORDER: send_order,
        TaskName.SEND_EMAIL_MESSAGE: send_email_message,
        TaskName.TRIGGER_WEBHOOK: trigger_webhook,
    })
    registry.ensure_complete()
    return registry
