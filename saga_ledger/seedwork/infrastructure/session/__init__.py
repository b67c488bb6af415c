from saga_ledger.seedwork.infrastructure.session.interfaces import IAsyncConnectionPool, IPgSession
from saga_ledger.seedwork.infrastructure.session.pg_session import (
    PgSession, PgSessionPool, PgTransactionSession, extract_connection
)
from saga_ledger.seedwork.infrastructure.session.in_memory_session import InMemorySession, InMemorySessionPool

__all__ = (
    "IAsyncConnectionPool",
    "IPgSession",
    "InMemorySession",
    "InMemorySessionPool",
    "PgSession",
    "PgSessionPool",
    "PgTransactionSession",
    "extract_connection",
)
