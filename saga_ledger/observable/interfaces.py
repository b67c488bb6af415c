import typing
from abc import ABCMeta, abstractmethod
from collections.abc import Callable, Hashable


__all__ = (
    "IDisposable",
    "IObservable",
)


class IDisposable(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def dispose(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def __add__(self, other: "IDisposable") -> "IDisposable":
        raise NotImplementedError


class IObservable(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    def attach(self, aspect: Hashable, observer: Callable, id_: Hashable | None = None) -> IDisposable:
        raise NotImplementedError

    @abstractmethod
    def detach(self, aspect: Hashable, observer: Callable, id_: Hashable | None = None):
        raise NotImplementedError

    @abstractmethod
    def notify(self, aspect: Hashable, *args, **kwargs):
        raise NotImplementedError

    @abstractmethod
    async def anotify(self, aspect: Hashable, *args, **kwargs):
        raise NotImplementedError
