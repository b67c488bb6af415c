import typing

from saga_ledger.observable.interfaces import IDisposable


__all__ = (
    "Disposable",
    "CompositeDisposable",
)


class Disposable(IDisposable):

    def __init__(self, callback: typing.Callable[[], typing.Awaitable[None]]):
        self._callback = callback

    async def dispose(self) -> None:
        await self._callback()

    def __add__(self, other: IDisposable) -> IDisposable:
        return CompositeDisposable(self, other)


class CompositeDisposable(IDisposable):

    def __init__(self, *delegates: IDisposable):
        self._delegates: list[IDisposable] = list(delegates)

    async def dispose(self) -> None:
        for delegate in self._delegates:
            await delegate.dispose()

    def __add__(self, other: IDisposable) -> IDisposable:
        return CompositeDisposable(*self._delegates, other)
