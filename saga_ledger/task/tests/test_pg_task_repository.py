import unittest

from saga_ledger.seedwork.infrastructure.tests.db import make_pg_session_pool, skip_without_postgresql
from saga_ledger.task.infrastructure.pg_task_repository import PgTaskRepository
from saga_ledger.task.tests import test_task_repository as ttr


# logging.basicConfig(level="DEBUG")


@skip_without_postgresql
class PgTaskRepositoryTestCase(ttr.InMemoryTaskRepositoryTestCase):

    async def _make_session_pool(self):
        return await make_pg_session_pool()

    async def _make_repository(self, session):
        repository = PgTaskRepository(table='test_tasks', clock=self.clock)
        await repository.cleanup(session)
        await repository.setup(session)
        return repository

    async def asyncTearDown(self):
        async with self.session_pool.session() as session:
            await self.repository.cleanup(session)
        await self.session_pool.close()


if __name__ == '__main__':
    unittest.main()
