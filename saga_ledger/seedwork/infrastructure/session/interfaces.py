import typing
from abc import ABCMeta, abstractmethod

from psycopg import AsyncConnection

from saga_ledger.seedwork.domain.session.interfaces import ISession

__all__ = (
    "IAsyncConnectionPool",
    "IPgSession",
)


class IAsyncConnectionPool(typing.Protocol):

    def connection(self, timeout: float | None = None) -> typing.AsyncContextManager[AsyncConnection[typing.Any]]:
        ...

    async def close(self, timeout: float = 5.0) -> None:
        ...


@typing.runtime_checkable
class IPgSession(ISession, typing.Protocol, metaclass=ABCMeta):

    @property
    @abstractmethod
    def connection(self) -> AsyncConnection[typing.Any]:
        raise NotImplementedError
