import dataclasses
import logging

from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.seedwork.domain.exceptions import AlreadyInUse
from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = (
    "ProgressKey",
    "RegisterServiceInProgress",
)


@dataclasses.dataclass(frozen=True)
class ProgressKey:
    agent_id: str
    product_id: str


class RegisterServiceInProgress:
    """Marks that an agent is registering a product, so a second registration
    of the same pair cannot start until the first one unlocks or expires."""
    KEY_PREFIX = 'saga_ledger:registerServiceInProgress'
    DEFAULT_TTL = 7200

    _store: ILockStore
    _ttl: int

    def __init__(self, store: ILockStore, ttl: int = DEFAULT_TTL):
        self._store = store
        self._ttl = ttl
        self._logger = logging.getLogger(".".join((type(self).__module__, type(self).__name__)))

    @property
    def ttl(self) -> int:
        return self._ttl

    @classmethod
    def make_key(cls, progress_key: ProgressKey) -> str:
        return '%s:%s:%s' % (cls.KEY_PREFIX, progress_key.agent_id, progress_key.product_id)

    async def lock(self, session: ISession, progress_key: ProgressKey, holder: str) -> None:
        key = self.make_key(progress_key)
        if not await self._store.set_if_absent(session, key, holder, self._ttl):
            self._logger.debug("Lock %s is already held", key)
            raise AlreadyInUse('action', ['object'], 'Already in progress.')
        self._logger.debug("Lock %s acquired by %s for %s seconds", key, holder, self._ttl)

    async def unlock(self, session: ISession, progress_key: ProgressKey) -> None:
        await self._store.delete(session, self.make_key(progress_key))

    async def release(self, session: ISession, progress_key: ProgressKey, holder: str) -> bool:
        """Unlocks only while ``holder`` still owns the entry."""
        released = await self._store.delete_if_holder(session, self.make_key(progress_key), holder)
        if released:
            self._logger.debug("Lock %s released by %s", self.make_key(progress_key), holder)
        return released

    async def get_holder(self, session: ISession, progress_key: ProgressKey) -> str | None:
        return await self._store.get(session, self.make_key(progress_key))
