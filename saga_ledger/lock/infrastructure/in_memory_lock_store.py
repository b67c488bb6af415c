import datetime
import typing

from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.seedwork.domain.utils.clock import IClock, utcnow

__all__ = ('InMemoryLockStore',)


class InMemoryLockStore(ILockStore):
    """Single-process lock store. Expiry is checked lazily on access."""
    _entries: dict[str, tuple[str, datetime.datetime]]

    def __init__(self, clock: IClock = utcnow):
        self._entries = {}
        self._clock = clock

    async def set_if_absent(self, session: ISession, key: str, holder: str, ttl: int) -> bool:
        if self._live(key) is not None:
            return False
        self._entries[key] = (holder, self._clock() + datetime.timedelta(seconds=ttl))
        return True

    async def get(self, session: ISession, key: str) -> str | None:
        return self._live(key)

    async def delete(self, session: ISession, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_if_holder(self, session: ISession, key: str, holder: str) -> bool:
        if self._live(key) != holder:
            return False
        del self._entries[key]
        return True

    def _live(self, key: str) -> typing.Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        holder, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return holder
