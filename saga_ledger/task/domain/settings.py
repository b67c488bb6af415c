import dataclasses
import typing

from saga_ledger.action.domain.interfaces import IActionRepository
from saga_ledger.config import Settings
from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.lock.domain.rate_limit import TicketTypeCategoryRateLimit
from saga_ledger.lock.domain.register_service_in_progress import RegisterServiceInProgress
from saga_ledger.seedwork.domain.exceptions import ServiceUnavailable
from saga_ledger.seedwork.domain.session.interfaces import ISessionPool
from saga_ledger.task.domain.interfaces import ITaskRepository

if typing.TYPE_CHECKING:
    from saga_ledger.orchestration.interfaces import (
        IEmailSender, IEventService, IMoneyTransferService, IReserveService, ITransactionRepository,
        IWebhookSender,
    )

__all__ = ('TaskSettings',)


@dataclasses.dataclass(kw_only=True)
class TaskSettings:
    """Dependencies a task operation runs against.

    Constructed once per process and passed by reference to every task.
    Optional collaborators are checked with ``require`` by the handlers that
    need them.
    """
    session_pool: ISessionPool
    action_repository: IActionRepository
    task_repository: ITaskRepository
    lock_store: ILockStore | None = None
    register_service_in_progress: RegisterServiceInProgress | None = None
    ticket_type_category_rate_limit: TicketTypeCategoryRateLimit | None = None
    transaction_repository: typing.Optional["ITransactionRepository"] = None
    event_service: typing.Optional["IEventService"] = None
    reserve_service: typing.Optional["IReserveService"] = None
    money_transfer_service: typing.Optional["IMoneyTransferService"] = None
    email_sender: typing.Optional["IEmailSender"] = None
    webhook_sender: typing.Optional["IWebhookSender"] = None
    config: Settings = dataclasses.field(default_factory=Settings)

    def require(self, name: str) -> typing.Any:
        value = getattr(self, name)
        if value is None:
            raise ServiceUnavailable('settings.%s undefined.' % name)
        return value
