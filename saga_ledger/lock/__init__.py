from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.lock.domain.rate_limit import RateLimitKey, TicketTypeCategoryRateLimit
from saga_ledger.lock.domain.register_service_in_progress import ProgressKey, RegisterServiceInProgress
from saga_ledger.lock.infrastructure.in_memory_lock_store import InMemoryLockStore
from saga_ledger.lock.infrastructure.pg_lock_store import PgLockStore
from saga_ledger.lock.infrastructure.redis_lock_store import RedisLockStore

__all__ = (
    'ILockStore',
    'InMemoryLockStore',
    'PgLockStore',
    'ProgressKey',
    'RateLimitKey',
    'RedisLockStore',
    'RegisterServiceInProgress',
    'TicketTypeCategoryRateLimit',
)
