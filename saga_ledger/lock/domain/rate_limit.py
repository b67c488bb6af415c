import dataclasses
import datetime
import logging

from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.seedwork.domain.exceptions import Argument, RateLimitExceeded
from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = (
    "RateLimitKey",
    "TicketTypeCategoryRateLimit",
)


@dataclasses.dataclass(frozen=True)
class RateLimitKey:
    ticket_type_category: str
    performance_start_date: datetime.datetime
    unit_in_seconds: int

    def bucket_start(self) -> datetime.datetime:
        """Floors the performance start date to the beginning of its window.

        Naive datetimes are taken as UTC.
        """
        start = self.performance_start_date
        if start.tzinfo is None:
            start = start.replace(tzinfo=datetime.timezone.utc)
        timestamp = int(start.timestamp())
        floored = timestamp - timestamp % self.unit_in_seconds
        return datetime.datetime.fromtimestamp(floored, tz=datetime.timezone.utc)


class TicketTypeCategoryRateLimit:
    """Windowed quota per ticket type category.

    A quota of N is N slot keys per time bucket. Each slot is a plain lock
    entry whose TTL equals the window length, so a bucket empties itself
    even if nobody releases it.
    """
    KEY_PREFIX = 'saga_ledger:rateLimit:ticketTypeCategory'

    _store: ILockStore
    _quota: int

    def __init__(self, store: ILockStore, quota: int = 1):
        if quota < 1:
            raise Argument('quota', 'Quota must be positive.')
        self._store = store
        self._quota = quota
        self._logger = logging.getLogger(".".join((type(self).__module__, type(self).__name__)))

    @property
    def quota(self) -> int:
        return self._quota

    @classmethod
    def make_key(cls, rate_limit_key: RateLimitKey, slot: int = 0) -> str:
        return '%s:%s:%s:%s:%s' % (
            cls.KEY_PREFIX,
            rate_limit_key.ticket_type_category,
            int(rate_limit_key.bucket_start().timestamp()),
            rate_limit_key.unit_in_seconds,
            slot,
        )

    async def lock(self, session: ISession, rate_limit_key: RateLimitKey, holder: str) -> int:
        """Takes a free slot of the bucket for ``holder`` and returns its number."""
        for slot in range(self._quota):
            key = self.make_key(rate_limit_key, slot)
            if await self._store.set_if_absent(session, key, holder, rate_limit_key.unit_in_seconds):
                self._logger.debug("Rate limit slot %s taken by %s", key, holder)
                return slot
        self._logger.info(
            "Rate limit exceeded for %s in bucket %s",
            rate_limit_key.ticket_type_category, rate_limit_key.bucket_start().isoformat()
        )
        raise RateLimitExceeded()

    async def unlock(self, session: ISession, rate_limit_key: RateLimitKey, slot: int | None = None) -> None:
        slots = range(self._quota) if slot is None else (slot,)
        for i in slots:
            await self._store.delete(session, self.make_key(rate_limit_key, i))

    async def get_holder(self, session: ISession, rate_limit_key: RateLimitKey, slot: int = 0) -> str | None:
        return await self._store.get(session, self.make_key(rate_limit_key, slot))

    async def get_holders(self, session: ISession, rate_limit_key: RateLimitKey) -> list[str | None]:
        return [await self.get_holder(session, rate_limit_key, slot) for slot in range(self._quota)]

    async def release(self, session: ISession, rate_limit_key: RateLimitKey, holder: str) -> bool:
        """Frees only the slots ``holder`` still owns.

        A slot that expired and was taken by someone else is left alone.
        """
        released = False
        for slot in range(self._quota):
            key = self.make_key(rate_limit_key, slot)
            if await self._store.delete_if_holder(session, key, holder):
                self._logger.debug("Rate limit slot %s released by %s", key, holder)
                released = True
        return released
