import typing
from abc import ABCMeta, abstractmethod

from saga_ledger.observable.interfaces import IObservable

__all__ = (
    "ISession",
    "ISessionPool",
)


class ISession(IObservable, typing.Protocol, metaclass=ABCMeta):
    response_time: float

    @abstractmethod
    def atomic(self) -> typing.AsyncContextManager["ISession"]:
        raise NotImplementedError


class ISessionPool(IObservable, metaclass=ABCMeta):
    response_time: float

    @abstractmethod
    def session(self) -> typing.AsyncContextManager[ISession]:
        raise NotImplementedError
