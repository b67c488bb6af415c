import asyncio
import unittest
from unittest import mock

from saga_ledger.action.infrastructure.in_memory_action_repository import InMemoryActionRepository
from saga_ledger.bootstrap import make_lock_store, run_executor, setup_storage
from saga_ledger.config import Settings
from saga_ledger.lock.infrastructure.pg_lock_store import PgLockStore
from saga_ledger.lock.infrastructure.redis_lock_store import RedisLockStore
from saga_ledger.orchestration.tests.fakes import PROJECT, FakeEventService
from saga_ledger.seedwork.domain.utils.clock import utcnow
from saga_ledger.seedwork.infrastructure.session import InMemorySessionPool
from saga_ledger.task.domain.model import TaskAttributes, TaskName
from saga_ledger.task.domain.settings import TaskSettings
from saga_ledger.task.infrastructure.in_memory_task_repository import InMemoryTaskRepository


# logging.basicConfig(level="DEBUG")


class MakeLockStoreTestCase(unittest.IsolatedAsyncioTestCase):

    async def test_redis_when_configured(self):
        store = make_lock_store(Settings(redis_url='redis://localhost:6379/0'))
        try:
            self.assertIsInstance(store, RedisLockStore)
        finally:
            await store.close()

    async def test_postgresql_otherwise(self):
        self.assertIsInstance(make_lock_store(Settings()), PgLockStore)


class SetupStorageTestCase(unittest.IsolatedAsyncioTestCase):

    async def test_lock_store_is_set_up(self):
        lock_store = mock.Mock(setup=mock.AsyncMock())
        settings = TaskSettings(
            session_pool=InMemorySessionPool(),
            action_repository=InMemoryActionRepository(),
            task_repository=InMemoryTaskRepository(),
            lock_store=lock_store,
        )
        await setup_storage(settings)
        lock_store.setup.assert_awaited_once()

    async def test_stores_without_setup_are_skipped(self):
        settings = TaskSettings(
            session_pool=InMemorySessionPool(),
            action_repository=InMemoryActionRepository(),
            task_repository=InMemoryTaskRepository(),
        )
        await setup_storage(settings)


class RunExecutorTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.session_pool = InMemorySessionPool()
        self.task_repository = InMemoryTaskRepository()
        self.event_service = FakeEventService()
        self.settings = TaskSettings(
            session_pool=self.session_pool,
            action_repository=InMemoryActionRepository(),
            task_repository=self.task_repository,
            event_service=self.event_service,
            config=Settings(task_polling_interval=0.01),
        )

    async def test_run_until_stopped(self):
        async with self.session_pool.session() as session:
            for event_id in ('event-1', 'event-2'):
                await self.task_repository.save(session, TaskAttributes(
                    name=TaskName.AGGREGATE_EVENT_RESERVATIONS,
                    runs_at=utcnow(),
                    remaining_number_of_tries=3,
                    data={'project': PROJECT, 'id': event_id},
                    project=PROJECT,
                ))

        stop = asyncio.Event()
        runner = asyncio.create_task(run_executor(self.settings, stop, names=(TaskName.AGGREGATE_EVENT_RESERVATIONS,)))
        for _ in range(100):
            if len(self.event_service.aggregated) == 2:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(runner, timeout=1)

        self.assertEqual(sorted(self.event_service.aggregated), ['event-1', 'event-2'])

    async def test_run_without_maintenance(self):
        stop = asyncio.Event()
        with mock.patch('saga_ledger.task.domain.executor.TaskExecutor.maintain') as maintain:
            runner = asyncio.create_task(run_executor(
                self.settings, stop, names=(TaskName.AGGREGATE_EVENT_RESERVATIONS,), maintain=False
            ))
            await asyncio.sleep(0.03)
            stop.set()
            await asyncio.wait_for(runner, timeout=1)
        maintain.assert_not_called()


if __name__ == '__main__':
    unittest.main()
