from saga_ledger.observable.disposable import CompositeDisposable, Disposable
from saga_ledger.observable.interfaces import IDisposable, IObservable
from saga_ledger.observable.observable import Observable


__all__ = (
    'CompositeDisposable',
    'Disposable',
    'IDisposable',
    'IObservable',
    'Observable',
)
