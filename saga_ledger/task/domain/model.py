import dataclasses
import datetime
import enum
import typing

from dateutil import parser as date_parser

from saga_ledger.seedwork.domain.exceptions import Argument

__all__ = (
    "TaskStatus",
    "TaskName",
    "ExecutionResult",
    "Task",
    "TaskAttributes",
)


class TaskStatus(str, enum.Enum):
    READY = 'Ready'
    RUNNING = 'Running'
    EXECUTED = 'Executed'
    ABORTED = 'Aborted'


class TaskName(str, enum.Enum):
    """Closed set of task kinds. Every member must have a registered handler."""
    CANCEL_SEAT_RESERVATION = 'cancelSeatReservation'
    AGGREGATE_EVENT_RESERVATIONS = 'aggregateEventReservations'
    GIVE_POINT_AWARD = 'givePointAward'
    RETURN_POINT_AWARD = 'returnPointAward'
    SEND_ORDER = 'sendOrder'
    SEND_EMAIL_MESSAGE = 'sendEmailMessage'
    TRIGGER_WEBHOOK = 'triggerWebhook'


def _parse_datetime(value: typing.Any) -> datetime.datetime | None:
    if value is None or isinstance(value, datetime.datetime):
        return value
    return date_parser.isoparse(value)


@dataclasses.dataclass(frozen=True, kw_only=True)
class ExecutionResult:
    """One attempt. ``error`` is ``''`` on success, otherwise
    ``{code, message, name, stack}``."""
    executed_at: datetime.datetime
    end_date: datetime.datetime
    error: dict | str = ''

    @property
    def succeeded(self) -> bool:
        return self.error == ''

    def export(self) -> dict:
        return {
            'executed_at': self.executed_at.isoformat(),
            'end_date': self.end_date.isoformat(),
            'error': self.error,
        }

    @classmethod
    def from_state(cls, state: typing.Mapping[str, typing.Any]) -> "ExecutionResult":
        return cls(
            executed_at=_parse_datetime(state['executed_at']),
            end_date=_parse_datetime(state['end_date']),
            error=state.get('error', ''),
        )


@dataclasses.dataclass(kw_only=True)
class TaskAttributes:
    name: TaskName
    runs_at: datetime.datetime
    remaining_number_of_tries: int
    data: dict
    project: dict | None = None
    status: TaskStatus = TaskStatus.READY

    def __post_init__(self):
        self.name = TaskName(self.name)
        self.status = TaskStatus(self.status)
        if self.status not in (TaskStatus.READY, TaskStatus.RUNNING):
            raise Argument('status', 'A new task is either Ready or Running.')
        if self.remaining_number_of_tries < 0:
            raise Argument('remaining_number_of_tries')


@dataclasses.dataclass(kw_only=True)
class Task:
    """Durable deferred work item.

    ``number_of_tried`` always equals ``len(execution_results)``.
    """
    id: str
    name: TaskName
    status: TaskStatus
    runs_at: datetime.datetime
    remaining_number_of_tries: int
    number_of_tried: int = 0
    last_tried_at: datetime.datetime | None = None
    data: dict = dataclasses.field(default_factory=dict)
    project: dict | None = None
    execution_results: list[ExecutionResult] = dataclasses.field(default_factory=list)

    @property
    def project_id(self) -> str | None:
        if self.project is None:
            return None
        return self.project.get('id')

    @classmethod
    def from_state(cls, state: typing.Mapping[str, typing.Any]) -> "Task":
        return cls(
            id=state['id'],
            name=TaskName(state['name']),
            status=TaskStatus(state['status']),
            runs_at=_parse_datetime(state['runs_at']),
            remaining_number_of_tries=state['remaining_number_of_tries'],
            number_of_tried=state['number_of_tried'],
            last_tried_at=_parse_datetime(state.get('last_tried_at')),
            data=state.get('data') or {},
            project=state.get('project'),
            execution_results=[ExecutionResult.from_state(r) for r in state.get('execution_results') or ()],
        )
