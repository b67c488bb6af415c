"""Composition root.

Builds the ``TaskSettings`` bundle once per process and runs the task
pollers against it. Collaborators that talk to external services are passed
in by the hosting application.
"""
import asyncio
import logging
import typing

from psycopg_pool import AsyncConnectionPool

from saga_ledger.action.infrastructure.pg_action_repository import PgActionRepository
from saga_ledger.config import Settings
from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.lock.domain.rate_limit import TicketTypeCategoryRateLimit
from saga_ledger.lock.domain.register_service_in_progress import RegisterServiceInProgress
from saga_ledger.lock.infrastructure.pg_lock_store import PgLockStore
from saga_ledger.lock.infrastructure.redis_lock_store import RedisLockStore
from saga_ledger.orchestration.infrastructure.aiohttp_webhook_sender import AiohttpWebhookSender
from saga_ledger.orchestration.tasks import make_registry
from saga_ledger.seedwork.infrastructure.session import PgSessionPool
from saga_ledger.task.domain.executor import TaskExecutor
from saga_ledger.task.domain.model import TaskName
from saga_ledger.task.domain.settings import TaskSettings
from saga_ledger.task.infrastructure.pg_task_repository import PgTaskRepository

__all__ = (
    "make_lock_store",
    "make_task_settings",
    "setup_storage",
    "make_executor",
    "run_executor",
)


_logger = logging.getLogger(__name__)


def make_lock_store(config: Settings) -> ILockStore:
    """Redis when ``REDIS_URL`` is set, the PostgreSQL table otherwise."""
    if config.redis_url:
        return RedisLockStore.from_url(config.redis_url)
    return PgLockStore()


async def make_task_settings(config: Settings, **collaborators: typing.Any) -> TaskSettings:
    pool = AsyncConnectionPool(config.require('postgresql_url'), open=False)
    await pool.open()
    lock_store = make_lock_store(config)
    collaborators.setdefault('webhook_sender', AiohttpWebhookSender(timeout=config.trigger_webhook_timeout))
    return TaskSettings(
        session_pool=PgSessionPool(pool),
        action_repository=PgActionRepository(),
        task_repository=PgTaskRepository(),
        lock_store=lock_store,
        register_service_in_progress=RegisterServiceInProgress(lock_store, ttl=config.register_service_lock_ttl),
        ticket_type_category_rate_limit=TicketTypeCategoryRateLimit(
            lock_store, quota=config.wheel_chair_rate_limit_quota
        ),
        config=config,
        **collaborators
    )


async def setup_storage(settings: TaskSettings) -> None:
    """Creates the tables of the PostgreSQL-backed stores, the lock store's
    included. Stores without a ``setup`` are skipped."""
    async with settings.session_pool.session() as session:
        for store in (settings.action_repository, settings.task_repository, settings.lock_store):
            setup = getattr(store, 'setup', None)
            if setup is not None:
                await setup(session)


def make_executor(settings: TaskSettings) -> TaskExecutor:
    return TaskExecutor(settings.session_pool, settings.task_repository, make_registry(), settings)


async def run_executor(
        settings: TaskSettings,
        stop: asyncio.Event,
        names: typing.Iterable[TaskName] = tuple(TaskName),
        project_id: str | None = None,
        maintain: bool = True
) -> None:
    """Polls every task kind in ``names`` until ``stop`` is set.

    With ``maintain``, a maintenance loop also moves stalled tasks back to
    Ready and aborts exhausted ones. Pass ``maintain=False`` when another
    process already runs it for the same project.
    """
    executor = make_executor(settings)
    names = tuple(names)
    _logger.info("Polling %s", ", ".join(name.value for name in names))
    config = settings.config
    loops = [executor.poll(name, config.task_polling_interval, stop, project_id) for name in names]
    if maintain:
        loops.append(executor.maintain(
            config.task_retry_interval_in_minutes,
            config.task_abort_interval_in_minutes,
            config.task_maintenance_period,
            stop,
            project_id
        ))
    await asyncio.gather(*loops)
