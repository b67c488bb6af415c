import inspect
import typing
from collections import defaultdict
from collections.abc import Callable, Hashable

from saga_ledger.observable.disposable import Disposable
from saga_ledger.observable.interfaces import IDisposable, IObservable


__all__ = (
    "Observable",
)


class Observable(IObservable):
    """Subject side of the observer pattern.

    Observers are called as ``observer(aspect, *args, **kwargs)``.
    ``anotify`` awaits observers that return awaitables, so sync and async
    observers can be mixed on the same aspect.
    """
    _observers: dict[Hashable, dict[Hashable, Callable]]

    def __init__(self, *args, **kwargs):
        self._observers = defaultdict(dict)
        super().__init__(*args, **kwargs)

    def attach(self, aspect: Hashable, observer: Callable, id_: Hashable | None = None) -> IDisposable:
        if id_ is None:
            id_ = self._make_id(observer)
        self._observers[aspect][id_] = observer

        async def callback():
            self.detach(aspect, observer, id_)

        return Disposable(callback)

    def detach(self, aspect: Hashable, observer: Callable, id_: Hashable | None = None):
        if id_ is None:
            id_ = self._make_id(observer)
        observers = self._observers.get(aspect)
        if observers is not None:
            observers.pop(id_, None)

    def notify(self, aspect: Hashable, *args, **kwargs):
        for observer in self._observers_of(aspect):
            observer(aspect, *args, **kwargs)

    async def anotify(self, aspect: Hashable, *args, **kwargs):
        for observer in self._observers_of(aspect):
            result = observer(aspect, *args, **kwargs)
            if inspect.isawaitable(result):
                await result

    def _observers_of(self, aspect: Hashable) -> list[Callable]:
        return list(self._observers.get(aspect, {}).values())

    @staticmethod
    def _make_id(observer: Callable) -> typing.Hashable:
        # Bound methods are recreated on every attribute access.
        if inspect.ismethod(observer):
            return id(observer.__self__), observer.__func__
        return observer
