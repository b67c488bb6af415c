import unittest

from saga_ledger.action.infrastructure.pg_action_repository import PgActionRepository
from saga_ledger.action.tests import test_action_repository as tar
from saga_ledger.seedwork.infrastructure.tests.db import make_pg_session_pool, skip_without_postgresql


# logging.basicConfig(level="DEBUG")


@skip_without_postgresql
class PgActionRepositoryTestCase(tar.InMemoryActionRepositoryTestCase):

    async def _make_session_pool(self):
        return await make_pg_session_pool()

    async def _make_repository(self, session):
        repository = PgActionRepository(table='test_actions', clock=self.clock)
        await repository.cleanup(session)
        await repository.setup(session)
        return repository

    async def asyncTearDown(self):
        async with self.session_pool.session() as session:
            await self.repository.cleanup(session)
        await self.session_pool.close()


if __name__ == '__main__':
    unittest.main()
