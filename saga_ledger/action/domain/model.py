import dataclasses
import datetime
import enum
import typing

from dateutil import parser as date_parser

from saga_ledger.seedwork.domain.exceptions import Argument

__all__ = (
    "ActionStatus",
    "ActionType",
    "Purpose",
    "SortOrder",
    "Action",
    "ActionAttributes",
    "ActionSearchConditions",
    "validate_sort",
)


class ActionStatus(str, enum.Enum):
    ACTIVE = 'ActiveActionStatus'
    COMPLETED = 'CompletedActionStatus'
    CANCELED = 'CanceledActionStatus'
    FAILED = 'FailedActionStatus'

    @property
    def is_terminal(self) -> bool:
        return self is not ActionStatus.ACTIVE


class ActionType(str, enum.Enum):
    AUTHORIZE = 'AuthorizeAction'
    SEND = 'SendAction'
    CHECK = 'CheckAction'
    GIVE = 'GiveAction'
    RETURN = 'ReturnAction'
    CANCEL = 'CancelAction'
    ORDER = 'OrderAction'
    PAY = 'PayAction'
    REFUND = 'RefundAction'
    REGISTER = 'RegisterAction'
    PRINT = 'PrintAction'


class Purpose(typing.TypedDict, total=False):
    type_of: str
    id: str
    order_number: str


# Field name -> 1 (ascending) or -1 (descending).
SortOrder = dict[str, int]

SORTABLE_FIELDS = ('start_date', 'end_date')


def validate_sort(sort: SortOrder | None) -> SortOrder | None:
    if sort is None:
        return None
    for field, direction in sort.items():
        if field not in SORTABLE_FIELDS or direction not in (1, -1):
            raise Argument('sort', 'Unsupported sort order: %s=%s.' % (field, direction))
    return sort


def _parse_datetime(value: typing.Any) -> datetime.datetime | None:
    if value is None or isinstance(value, datetime.datetime):
        return value
    return date_parser.isoparse(value)


def _type_of(value: typing.Any) -> str:
    if isinstance(value, enum.Enum):
        return value.value
    return value


@dataclasses.dataclass(kw_only=True)
class ActionAttributes:
    type_of: str
    agent: dict
    object: typing.Any
    recipient: dict | None = None
    purpose: Purpose | None = None
    project: dict | None = None
    instrument: dict | None = None
    potential_actions: dict | None = None

    def __post_init__(self):
        self.type_of = _type_of(self.type_of)

    @classmethod
    def from_state(cls, state: typing.Mapping[str, typing.Any]) -> "ActionAttributes":
        """Builds attributes from a task payload, ignoring unknown keys."""
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in state.items() if k in names})

    def export(self) -> dict:
        return dataclasses.asdict(self)


@dataclasses.dataclass(kw_only=True)
class Action:
    """One recorded unit of business work.

    ``result`` is set only when Completed and ``error`` only when Failed.
    Once the status is terminal the record is never modified again.
    """
    id: str
    type_of: str
    action_status: ActionStatus
    start_date: datetime.datetime
    end_date: datetime.datetime | None = None
    agent: dict = dataclasses.field(default_factory=dict)
    recipient: dict | None = None
    object: typing.Any = None
    result: typing.Any = None
    error: dict | None = None
    purpose: Purpose | None = None
    project: dict | None = None
    instrument: dict | None = None
    potential_actions: dict | None = None

    def export(self) -> dict:
        state = dataclasses.asdict(self)
        state['action_status'] = self.action_status.value
        return state

    @classmethod
    def from_state(cls, state: typing.Mapping[str, typing.Any]) -> "Action":
        names = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in state.items() if k in names}
        kwargs['action_status'] = ActionStatus(kwargs['action_status'])
        kwargs['start_date'] = _parse_datetime(kwargs['start_date'])
        kwargs['end_date'] = _parse_datetime(kwargs.get('end_date'))
        return cls(**kwargs)

    @classmethod
    def from_attributes(
            cls,
            id_: str,
            attributes: ActionAttributes,
            action_status: ActionStatus,
            start_date: datetime.datetime,
            end_date: datetime.datetime | None = None
    ) -> "Action":
        return cls(
            id=id_,
            action_status=action_status,
            start_date=start_date,
            end_date=end_date,
            **dataclasses.asdict(attributes)
        )


@dataclasses.dataclass(kw_only=True)
class ActionSearchConditions:
    project_ids: typing.Sequence[str] | None = None
    type_of: str | None = None
    action_statuses: typing.Sequence[ActionStatus] | None = None
    purpose_type_ofs: typing.Sequence[str] | None = None
    purpose_ids: typing.Sequence[str] | None = None
    object_type_ofs: typing.Sequence[str] | None = None
    object_ids: typing.Sequence[str] | None = None
    object_order_numbers: typing.Sequence[str] | None = None
    object_event_ids: typing.Sequence[str] | None = None
    start_from: datetime.datetime | None = None
    start_through: datetime.datetime | None = None
    limit: int | None = None
    page: int | None = None
    sort: SortOrder | None = None

    def __post_init__(self):
        self.type_of = _type_of(self.type_of)
        validate_sort(self.sort)
        if self.limit is not None and self.limit < 1:
            raise Argument('limit')
        if self.page is not None and self.page < 1:
            raise Argument('page')
