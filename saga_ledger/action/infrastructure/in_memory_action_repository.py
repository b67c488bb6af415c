import copy
import dataclasses
import typing
import uuid

from saga_ledger.action.domain.interfaces import IActionRepository
from saga_ledger.action.domain.model import (
    Action, ActionAttributes, ActionSearchConditions, ActionStatus, ActionType, SortOrder, validate_sort
)
from saga_ledger.seedwork.domain.exceptions import NotFound
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.seedwork.domain.utils.clock import IClock, utcnow
from saga_ledger.seedwork.domain.utils.errors import error_to_dict

__all__ = ('InMemoryActionRepository',)


def _get(document: typing.Any, key: str) -> typing.Any:
    if isinstance(document, typing.Mapping):
        return document.get(key)
    return None


def _sorted(actions: list[Action], sort: SortOrder | None) -> list[Action]:
    if not sort:
        return actions
    # Nulls come first in ascending order and last in descending order.
    for field, direction in reversed(list(sort.items())):
        actions = sorted(
            actions,
            key=lambda a: (getattr(a, field) is not None, getattr(a, field) or 0),
            reverse=direction < 0
        )
    return actions


class InMemoryActionRepository(IActionRepository):
    """Process-local ledger.

    Each method runs without awaiting anything in between, so under asyncio
    every read-check-write is atomic. Stored actions are copied on the way in
    and out.
    """
    _actions: dict[str, Action]

    def __init__(self, clock: IClock = utcnow, id_factory: typing.Callable[[], str] = lambda: str(uuid.uuid4())):
        self._actions = {}
        self._clock = clock
        self._id_factory = id_factory

    async def start(self, session: ISession, attributes: ActionAttributes) -> Action:
        action = Action.from_attributes(
            self._id_factory(), attributes, ActionStatus.ACTIVE, self._clock()
        )
        self._actions[action.id] = action
        return copy.deepcopy(action)

    async def complete(self, session: ISession, type_of: str, id_: str, result: typing.Any) -> Action:
        return self._transit(
            type_of, id_, (ActionStatus.ACTIVE,),
            action_status=ActionStatus.COMPLETED, result=copy.deepcopy(result), end_date=self._clock()
        )

    async def cancel(self, session: ISession, type_of: str, id_: str, *, allow_completed: bool = False) -> Action:
        allowed_from = (ActionStatus.ACTIVE, ActionStatus.COMPLETED) if allow_completed else (ActionStatus.ACTIVE,)
        return self._transit(type_of, id_, allowed_from, action_status=ActionStatus.CANCELED)

    async def give_up(self, session: ISession, type_of: str, id_: str, error: typing.Any) -> Action:
        if isinstance(error, BaseException):
            error = error_to_dict(error)
        return self._transit(
            type_of, id_, (ActionStatus.ACTIVE,),
            action_status=ActionStatus.FAILED, error=copy.deepcopy(error), end_date=self._clock()
        )

    async def find_by_id(self, session: ISession, type_of: str, id_: str) -> Action:
        action = self._actions.get(id_)
        if action is None or action.type_of != type_of:
            raise NotFound('Action')
        return copy.deepcopy(action)

    async def search_by_purpose(
            self,
            session: ISession,
            purpose_type_of: str,
            purpose_id: str | None = None,
            type_of: str | None = None,
            sort: SortOrder | None = None
    ) -> list[Action]:
        validate_sort(sort)

        def match(action: Action) -> bool:
            if _get(action.purpose, 'type_of') != purpose_type_of:
                return False
            if purpose_id is not None and _get(action.purpose, 'id') != purpose_id:
                return False
            if type_of is not None and action.type_of != type_of:
                return False
            return True

        return self._find(match, sort)

    async def search_by_order_number(
            self,
            session: ISession,
            order_number: str,
            sort: SortOrder | None = None
    ) -> list[Action]:
        validate_sort(sort)
        return self._find(
            lambda a: order_number in (_get(a.object, 'order_number'), _get(a.purpose, 'order_number')),
            sort
        )

    async def search(self, session: ISession, conditions: ActionSearchConditions) -> list[Action]:
        actions = self._find(lambda a: self._matches(a, conditions), conditions.sort)
        if conditions.limit is not None and conditions.page is not None:
            offset = conditions.limit * (conditions.page - 1)
            actions = actions[offset:offset + conditions.limit]
        return actions

    async def count(self, session: ISession, conditions: ActionSearchConditions) -> int:
        return sum(1 for a in self._actions.values() if self._matches(a, conditions))

    async def print_ticket(self, session: ISession, agent_id: str, ticket_token: str, project: dict) -> Action:
        now = self._clock()
        action = Action(
            id=self._id_factory(),
            type_of=ActionType.PRINT.value,
            action_status=ActionStatus.COMPLETED,
            start_date=now,
            end_date=now,
            agent={'type_of': 'Person', 'id': agent_id},
            object={'type_of': 'Ticket', 'ticket_token': ticket_token},
            project=copy.deepcopy(project),
        )
        self._actions[action.id] = action
        return copy.deepcopy(action)

    async def search_print_ticket(self, session: ISession, agent_id: str, ticket_token: str) -> list[Action]:
        return self._find(
            lambda a: (
                a.type_of == ActionType.PRINT.value
                and _get(a.agent, 'id') == agent_id
                and _get(a.object, 'type_of') == 'Ticket'
                and _get(a.object, 'ticket_token') == ticket_token
            ),
            None
        )

    def _transit(
            self,
            type_of: str,
            id_: str,
            allowed_from: typing.Sequence[ActionStatus],
            **changes
    ) -> Action:
        action = self._actions.get(id_)
        if action is None or action.type_of != type_of or action.action_status not in allowed_from:
            raise NotFound('Action')
        action = dataclasses.replace(action, **changes)
        self._actions[id_] = action
        return copy.deepcopy(action)

    def _find(self, match: typing.Callable[[Action], bool], sort: SortOrder | None) -> list[Action]:
        actions = [copy.deepcopy(a) for a in self._actions.values() if match(a)]
        return _sorted(actions, sort)

    @staticmethod
    def _matches(action: Action, c: ActionSearchConditions) -> bool:
        checks = (
            (c.project_ids, _get(action.project, 'id')),
            (c.action_statuses, action.action_status),
            (c.purpose_type_ofs, _get(action.purpose, 'type_of')),
            (c.purpose_ids, _get(action.purpose, 'id')),
            (c.object_type_ofs, _get(action.object, 'type_of')),
            (c.object_ids, _get(action.object, 'id')),
            (c.object_order_numbers, _get(action.object, 'order_number')),
            (c.object_event_ids, _get(_get(action.object, 'event'), 'id')),
        )
        for expected, actual in checks:
            if expected is not None and actual not in expected:
                return False
        if c.type_of is not None and action.type_of != c.type_of:
            return False
        if c.start_from is not None and action.start_date < c.start_from:
            return False
        if c.start_through is not None and action.start_date > c.start_through:
            return False
        return True
