import asyncio
import datetime
import unittest

from saga_ledger.seedwork.domain.exceptions import Argument, NotFound
from saga_ledger.seedwork.domain.tests.clock import FakeClock
from saga_ledger.seedwork.infrastructure.session import InMemorySessionPool
from saga_ledger.task.domain.model import ExecutionResult, TaskAttributes, TaskName, TaskStatus
from saga_ledger.task.infrastructure.in_memory_task_repository import InMemoryTaskRepository


# logging.basicConfig(level="DEBUG")


def make_attributes(clock, delay=0, name=TaskName.AGGREGATE_EVENT_RESERVATIONS, tries=3, project_id='project-1',
                    **kwargs) -> TaskAttributes:
    values = dict(
        name=name,
        runs_at=clock() + datetime.timedelta(seconds=delay),
        remaining_number_of_tries=tries,
        data={'project': {'id': project_id}, 'id': 'event-1'},
        project={'type_of': 'Project', 'id': project_id},
    )
    values.update(kwargs)
    return TaskAttributes(**values)


class InMemoryTaskRepositoryTestCase(unittest.IsolatedAsyncioTestCase):

    async def _make_session_pool(self):
        return InMemorySessionPool()

    async def _make_repository(self, session):
        return InMemoryTaskRepository(clock=self.clock)

    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.session_pool = await self._make_session_pool()
        async with self.session_pool.session() as session:
            self.repository = await self._make_repository(session)

    def _result(self, error=''):
        return ExecutionResult(executed_at=self.clock(), end_date=self.clock(), error=error)

    async def test_save(self):
        async with self.session_pool.session() as session:
            task = await self.repository.save(session, make_attributes(self.clock))
            found = await self.repository.find_by_id(session, task.id)
        self.assertEqual(found.status, TaskStatus.READY)
        self.assertEqual(found.number_of_tried, 0)
        self.assertEqual(found.remaining_number_of_tries, 3)
        self.assertEqual(found.execution_results, [])
        self.assertIsNone(found.last_tried_at)
        self.assertEqual(found.data, {'project': {'id': 'project-1'}, 'id': 'event-1'})
        self.assertEqual(found.project_id, 'project-1')

    async def test_save_rejects_terminal_status(self):
        with self.assertRaises(Argument):
            make_attributes(self.clock, status=TaskStatus.EXECUTED)

    async def test_find_missing(self):
        async with self.session_pool.session() as session:
            with self.assertRaises(NotFound):
                await self.repository.find_by_id(session, 'missing')

    async def test_claim_waits_for_runs_at(self):
        async with self.session_pool.session() as session:
            task = await self.repository.save(session, make_attributes(self.clock, delay=5))
            self.assertIsNone(
                await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
            )
            self.clock.advance(5)
            claimed = await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
        self.assertEqual(claimed.id, task.id)
        self.assertEqual(claimed.status, TaskStatus.RUNNING)
        self.assertEqual(claimed.remaining_number_of_tries, 2)
        self.assertEqual(claimed.last_tried_at, self.clock.now)

    async def test_claim_filters_by_name_and_project(self):
        async with self.session_pool.session() as session:
            await self.repository.save(session, make_attributes(self.clock, project_id='project-2'))
            self.assertIsNone(await self.repository.execute_one_by_name(session, TaskName.SEND_ORDER))
            self.assertIsNone(await self.repository.execute_one_by_name(
                session, TaskName.AGGREGATE_EVENT_RESERVATIONS, 'project-1'
            ))
            claimed = await self.repository.execute_one_by_name(
                session, TaskName.AGGREGATE_EVENT_RESERVATIONS, 'project-2'
            )
        self.assertIsNotNone(claimed)

    async def test_claim_is_exclusive(self):
        async with self.session_pool.session() as session:
            await self.repository.save(session, make_attributes(self.clock))
        async with self.session_pool.session() as s1, self.session_pool.session() as s2:
            claimed = await asyncio.gather(
                self.repository.execute_one_by_name(s1, TaskName.AGGREGATE_EVENT_RESERVATIONS),
                self.repository.execute_one_by_name(s2, TaskName.AGGREGATE_EVENT_RESERVATIONS),
            )
        self.assertEqual(len([t for t in claimed if t is not None]), 1)

    async def test_claim_skips_running(self):
        async with self.session_pool.session() as session:
            await self.repository.save(session, make_attributes(self.clock))
            await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
            self.assertIsNone(
                await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
            )

    async def test_push_execution_result(self):
        async with self.session_pool.session() as session:
            task = await self.repository.save(session, make_attributes(self.clock))
            await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
            self.clock.advance(1)
            failed = await self.repository.push_execution_result_by_id(
                session, task.id, TaskStatus.RUNNING, self._result({'code': 500, 'message': 'boom'})
            )
            self.assertEqual(failed.status, TaskStatus.RUNNING)
            self.assertEqual(failed.number_of_tried, 1)
            self.assertEqual(failed.last_tried_at, self.clock.now)
            self.assertFalse(failed.execution_results[0].succeeded)

            executed = await self.repository.push_execution_result_by_id(
                session, task.id, TaskStatus.EXECUTED, self._result()
            )
        self.assertEqual(executed.status, TaskStatus.EXECUTED)
        self.assertEqual(executed.number_of_tried, 2)
        self.assertEqual(len(executed.execution_results), 2)
        self.assertTrue(executed.execution_results[-1].succeeded)

    async def test_push_to_missing(self):
        async with self.session_pool.session() as session:
            with self.assertRaises(NotFound):
                await self.repository.push_execution_result_by_id(
                    session, 'missing', TaskStatus.EXECUTED, self._result()
                )

    async def test_retry(self):
        async with self.session_pool.session() as session:
            task = await self.repository.save(session, make_attributes(self.clock))
            await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
            self.assertEqual(await self.repository.retry(session, 10), 0)
            self.clock.advance(11 * 60)
            self.assertEqual(await self.repository.retry(session, 10, 'project-2'), 0)
            self.assertEqual(await self.repository.retry(session, 10), 1)
            found = await self.repository.find_by_id(session, task.id)
            self.assertEqual(found.status, TaskStatus.READY)
            again = await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
        self.assertEqual(again.remaining_number_of_tries, 1)

    async def test_abort_one(self):
        async with self.session_pool.session() as session:
            task = await self.repository.save(session, make_attributes(self.clock, tries=1))
            await self.repository.execute_one_by_name(session, TaskName.AGGREGATE_EVENT_RESERVATIONS)
            self.clock.advance(11 * 60)
            self.assertEqual(await self.repository.retry(session, 10), 0)
            aborted = await self.repository.abort_one(session, 10)
            self.assertEqual(aborted.id, task.id)
            self.assertEqual(aborted.status, TaskStatus.ABORTED)
            self.assertIsNone(await self.repository.abort_one(session, 10))


if __name__ == '__main__':
    unittest.main()
