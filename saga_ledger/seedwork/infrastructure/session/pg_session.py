import typing
from contextlib import asynccontextmanager
from time import perf_counter

from psycopg import AsyncConnection, IsolationLevel

from saga_ledger.observable.observable import Observable
from saga_ledger.seedwork.domain.session.interfaces import ISessionPool, ISession
from saga_ledger.seedwork.infrastructure.session.interfaces import IAsyncConnectionPool, IPgSession

__all__ = (
    "PgSession",
    "PgSessionPool",
    "PgTransactionSession",
    "extract_connection",
)


def extract_connection(session: ISession) -> AsyncConnection[typing.Any]:
    return typing.cast(IPgSession, session).connection


@asynccontextmanager
async def _announced(owner, session):
    """Brackets ``session`` with started/ended events on ``owner`` and adds its
    response time to the owner's."""
    await owner.anotify(aspect='session_started', session=session)
    try:
        yield session
    finally:
        owner.response_time += session.response_time
        await owner.anotify(aspect='session_ended', session=session)


class PgSessionPool(Observable, ISessionPool):
    """Hands out one pooled connection per session.

    Connections run in autocommit mode, so every statement issued outside of
    ``atomic()`` is committed on its own. Saga steps rely on this: each step
    commits its own document mutation.
    """
    _pool: IAsyncConnectionPool
    response_time: float

    def __init__(self, pool: IAsyncConnectionPool) -> None:
        self._pool = pool
        self.response_time = 0.0
        super().__init__()

    @asynccontextmanager
    async def session(self) -> typing.AsyncIterator[ISession]:
        async with self._pool.connection() as conn:
            await conn.set_autocommit(True)
            await conn.set_isolation_level(IsolationLevel.READ_COMMITTED)
            async with _announced(self, self._make_session(conn)) as session:
                started_at = perf_counter()
                try:
                    yield session
                finally:
                    session.response_time += perf_counter() - started_at

    async def close(self):
        await self._pool.close()

    @staticmethod
    def _make_session(connection):
        return PgSession(connection)


class PgSession(Observable, IPgSession):
    _connection: AsyncConnection[typing.Any]
    _parent: typing.Optional["PgSession"]
    response_time: float

    def __init__(self, connection, parent: typing.Optional["PgSession"] = None):
        self._connection = connection
        self._parent = parent
        self.response_time = 0.0
        super().__init__()

    @property
    def connection(self) -> AsyncConnection[typing.Any]:
        return self._connection

    @asynccontextmanager
    async def atomic(self) -> typing.AsyncIterator[ISession]:
        async with self.connection.transaction() as transaction:
            async with _announced(self, self._make_transaction_session(transaction.connection)) as session:
                yield session

    def _make_transaction_session(self, connection):
        return PgTransactionSession(connection, self)


class PgTransactionSession(PgSession):

    def _make_transaction_session(self, connection):
        # Nested transaction() blocks become savepoints in psycopg.
        return PgTransactionSession(connection, self)
