import typing
from contextlib import asynccontextmanager

from saga_ledger.observable.observable import Observable
from saga_ledger.seedwork.domain.session.interfaces import ISessionPool, ISession

__all__ = (
    "InMemorySession",
    "InMemorySessionPool",
)


class InMemorySessionPool(Observable, ISessionPool):
    """Session pool for the in-memory repositories and lock store.

    There is nothing to connect to: sessions only carry the observer hooks,
    and ``atomic()`` does not roll anything back.
    """
    response_time: float

    def __init__(self) -> None:
        self.response_time = 0.0
        super().__init__()

    @asynccontextmanager
    async def session(self) -> typing.AsyncIterator[ISession]:
        session = InMemorySession()
        await self.anotify(
            aspect='session_started',
            session=session
        )
        try:
            yield session
        finally:
            self.response_time += session.response_time
            await self.anotify(
                aspect='session_ended',
                session=session
            )


class InMemorySession(Observable, ISession):
    _parent: typing.Optional["InMemorySession"]
    response_time: float

    def __init__(self, parent: typing.Optional["InMemorySession"] = None):
        self._parent = parent
        self.response_time = 0.0
        super().__init__()

    @asynccontextmanager
    async def atomic(self) -> typing.AsyncIterator[ISession]:
        session = InMemorySession(self)
        await self.anotify(
            aspect='session_started',
            session=session
        )
        try:
            yield session
        finally:
            await self.anotify(
                aspect='session_ended',
                session=session
            )
