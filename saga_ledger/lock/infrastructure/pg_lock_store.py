from saga_ledger.lock.domain.interfaces import ILockStore
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.seedwork.infrastructure.session.pg_session import extract_connection
from saga_ledger.seedwork.infrastructure.utils.pg import escape

__all__ = ('PgLockStore',)


class PgLockStore(ILockStore):
    """Lock store on a PostgreSQL table.

    Expiry is compared with ``clock_timestamp()``, so every statement sees the
    database server's wall clock rather than the transaction start time.
    An expired row is taken over in place by the next ``set_if_absent``.
    """
    _extract_connection = staticmethod(extract_connection)
    _table: str = 'locks'

    def __init__(self, table: str | None = None):
        if table is not None:
            self._table = table

    async def set_if_absent(self, session: ISession, key: str, holder: str, ttl: int) -> bool:
        sql = """
            INSERT INTO %(table)s (key, holder, expires_at)
            VALUES (%%(key)s, %%(holder)s, clock_timestamp() + %%(ttl)s * interval '1 second')
            ON CONFLICT (key) DO UPDATE
            SET holder = EXCLUDED.holder, expires_at = EXCLUDED.expires_at
            WHERE %(table)s.expires_at <= clock_timestamp()
            RETURNING key
        """ % {
            'table': escape(self._table),
        }
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql, {'key': key, 'holder': holder, 'ttl': ttl})
            return (await acursor.fetchone()) is not None

    async def get(self, session: ISession, key: str) -> str | None:
        sql = """
            SELECT holder FROM %s
            WHERE key = %%s AND expires_at > clock_timestamp()
        """ % escape(self._table)
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql, (key,))
            row = await acursor.fetchone()
        if row is None:
            return None
        return row[0]

    async def delete(self, session: ISession, key: str) -> None:
        sql = "DELETE FROM %s WHERE key = %%s" % escape(self._table)
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql, (key,))

    async def delete_if_holder(self, session: ISession, key: str, holder: str) -> bool:
        sql = """
            DELETE FROM %s
            WHERE key = %%s AND holder = %%s AND expires_at > clock_timestamp()
            RETURNING key
        """ % escape(self._table)
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql, (key, holder))
            return (await acursor.fetchone()) is not None

    async def setup(self, session: ISession):
        sql = """
            CREATE TABLE IF NOT EXISTS %(table)s (
                key VARCHAR(255) NOT NULL PRIMARY KEY,
                holder VARCHAR(255) NOT NULL,
                expires_at TIMESTAMPTZ NOT NULL
            );
            CREATE INDEX IF NOT EXISTS %(index_name)s ON %(table)s (expires_at);
        """ % {
            'table': escape(self._table),
            'index_name': escape('%s_expires_at_idx' % self._table),
        }
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql)

    async def cleanup(self, session: ISession):
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute("DROP TABLE IF EXISTS %s" % escape(self._table))
