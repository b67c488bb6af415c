from saga_ledger.seedwork.domain.session.interfaces import ISession, ISessionPool

__all__ = (
    "ISession",
    "ISessionPool",
)
