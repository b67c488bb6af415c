import typing
from abc import ABCMeta, abstractmethod

from saga_ledger.action.domain.model import Action, ActionAttributes, ActionSearchConditions, SortOrder
from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = (
    "IActionRepository",
)


class IActionRepository(typing.Protocol, metaclass=ABCMeta):
    """Durable ledger of actions.

    Every write is a single conditional update filtered by ``(type_of, id)``
    and by the statuses the transition may start from, so a terminal action
    can never be resurrected or overwritten. A write that matches nothing
    raises ``NotFound('Action')``.
    """

    @abstractmethod
    async def start(self, session: ISession, attributes: ActionAttributes) -> Action:
        """Creates an Active action with ``start_date = now``."""
        raise NotImplementedError

    @abstractmethod
    async def complete(self, session: ISession, type_of: str, id_: str, result: typing.Any) -> Action:
        """Active -> Completed, sets ``end_date`` and ``result``."""
        raise NotImplementedError

    @abstractmethod
    async def cancel(self, session: ISession, type_of: str, id_: str, *, allow_completed: bool = False) -> Action:
        """Active -> Canceled.

        With ``allow_completed`` a Completed action may be voided too, which
        is how a granted authorization is compensated.
        """
        raise NotImplementedError

    @abstractmethod
    async def give_up(self, session: ISession, type_of: str, id_: str, error: typing.Any) -> Action:
        """Active -> Failed, sets ``end_date`` and ``error``."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(self, session: ISession, type_of: str, id_: str) -> Action:
        raise NotImplementedError

    @abstractmethod
    async def search_by_purpose(
            self,
            session: ISession,
            purpose_type_of: str,
            purpose_id: str | None = None,
            type_of: str | None = None,
            sort: SortOrder | None = None
    ) -> list[Action]:
        raise NotImplementedError

    @abstractmethod
    async def search_by_order_number(
            self,
            session: ISession,
            order_number: str,
            sort: SortOrder | None = None
    ) -> list[Action]:
        """Actions about an order (``object.order_number``) or performed as a
        part of it (``purpose.order_number``)."""
        raise NotImplementedError

    @abstractmethod
    async def search(self, session: ISession, conditions: ActionSearchConditions) -> list[Action]:
        raise NotImplementedError

    @abstractmethod
    async def count(self, session: ISession, conditions: ActionSearchConditions) -> int:
        raise NotImplementedError

    @abstractmethod
    async def print_ticket(self, session: ISession, agent_id: str, ticket_token: str, project: dict) -> Action:
        """Records an already Completed ticket print."""
        raise NotImplementedError

    @abstractmethod
    async def search_print_ticket(self, session: ISession, agent_id: str, ticket_token: str) -> list[Action]:
        raise NotImplementedError
