import typing
from abc import ABCMeta, abstractmethod

from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = (
    "ILockStore",
)


class ILockStore(typing.Protocol, metaclass=ABCMeta):
    """Key/value store with set-if-absent and per-key expiry.

    A key maps to a holder token. At most one holder per key exists at any
    instant, and an expired key behaves exactly as an absent one.
    """

    @abstractmethod
    async def set_if_absent(self, session: ISession, key: str, holder: str, ttl: int) -> bool:
        """Sets the key to ``holder`` with ``ttl`` seconds of life in one atomic step.

        Returns False when the key is already held.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, session: ISession, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, session: ISession, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_if_holder(self, session: ISession, key: str, holder: str) -> bool:
        """Atomic compare-and-delete. Returns True when the key was removed."""
        raise NotImplementedError
