import datetime
import typing
import uuid

from psycopg.rows import dict_row

from saga_ledger.seedwork.domain.exceptions import NotFound
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.seedwork.domain.utils.clock import IClock, utcnow
from saga_ledger.seedwork.infrastructure.session.pg_session import extract_connection
from saga_ledger.seedwork.infrastructure.utils.json import to_jsonb
from saga_ledger.seedwork.infrastructure.utils.pg import escape
from saga_ledger.task.domain.interfaces import ITaskRepository
from saga_ledger.task.domain.model import ExecutionResult, Task, TaskAttributes, TaskName, TaskStatus

__all__ = ('PgTaskRepository',)


class PgTaskRepository(ITaskRepository):
    """Task queue on PostgreSQL.

    Claims pick the row with ``FOR UPDATE SKIP LOCKED``, so any number of
    executors can poll the same table without claiming a task twice.
    """
    _extract_connection = staticmethod(extract_connection)
    _table: str = 'tasks'

    def __init__(
            self,
            table: str | None = None,
            clock: IClock = utcnow,
            id_factory: typing.Callable[[], str] = lambda: str(uuid.uuid4())
    ):
        if table is not None:
            self._table = table
        self._clock = clock
        self._id_factory = id_factory

    async def save(self, session: ISession, attributes: TaskAttributes) -> Task:
        sql = """
            INSERT INTO %s (
                id, name, status, runs_at, remaining_number_of_tries, number_of_tried, project, data
            )
            VALUES (
                %%(id)s, %%(name)s, %%(status)s, %%(runs_at)s, %%(remaining_number_of_tries)s, 0,
                %%(project)s, %%(data)s
            )
            RETURNING *
        """ % escape(self._table)
        params = {
            'id': self._id_factory(),
            'name': attributes.name.value,
            'status': attributes.status.value,
            'runs_at': attributes.runs_at,
            'remaining_number_of_tries': attributes.remaining_number_of_tries,
            'project': to_jsonb(attributes.project),
            'data': to_jsonb(attributes.data),
        }
        return await self._fetch_one(session, sql, params)

    async def execute_one_by_name(
            self,
            session: ISession,
            name: TaskName,
            project_id: str | None = None
    ) -> Task | None:
        project_filter = ""
        params = {
            'name': TaskName(name).value,
            'now': self._clock(),
            'ready': TaskStatus.READY.value,
            'running': TaskStatus.RUNNING.value,
        }
        if project_id is not None:
            project_filter = "AND project->>'id' = %(project_id)s"
            params['project_id'] = project_id
        sql = """
            UPDATE %(table)s
            SET status = %%(running)s,
                remaining_number_of_tries = remaining_number_of_tries - 1,
                last_tried_at = %%(now)s
            WHERE status = %%(ready)s AND id = (
                SELECT id FROM %(table)s
                WHERE status = %%(ready)s AND name = %%(name)s AND runs_at <= %%(now)s %(project_filter)s
                ORDER BY runs_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
            )
            RETURNING *
        """ % {
            'table': escape(self._table),
            'project_filter': project_filter,
        }
        return await self._fetch_one(session, sql, params, required=False)

    async def push_execution_result_by_id(
            self,
            session: ISession,
            id_: str,
            status: TaskStatus,
            result: ExecutionResult
    ) -> Task:
        sql = """
            UPDATE %s
            SET status = %%(status)s,
                execution_results = execution_results || %%(result)s,
                number_of_tried = number_of_tried + 1,
                last_tried_at = %%(now)s
            WHERE id = %%(id)s
            RETURNING *
        """ % escape(self._table)
        params = {
            'id': id_,
            'status': TaskStatus(status).value,
            'result': to_jsonb([result.export()]),
            'now': self._clock(),
        }
        return await self._fetch_one(session, sql, params)

    async def find_by_id(self, session: ISession, id_: str) -> Task:
        sql = "SELECT * FROM %s WHERE id = %%(id)s" % escape(self._table)
        return await self._fetch_one(session, sql, {'id': id_})

    async def retry(self, session: ISession, interval_in_minutes: int, project_id: str | None = None) -> int:
        project_filter = ""
        params = {
            'threshold': self._threshold(interval_in_minutes),
            'ready': TaskStatus.READY.value,
            'running': TaskStatus.RUNNING.value,
        }
        if project_id is not None:
            project_filter = "AND project->>'id' = %(project_id)s"
            params['project_id'] = project_id
        sql = """
            UPDATE %(table)s
            SET status = %%(ready)s
            WHERE status = %%(running)s
                AND remaining_number_of_tries > 0
                AND last_tried_at < %%(threshold)s
                %(project_filter)s
        """ % {
            'table': escape(self._table),
            'project_filter': project_filter,
        }
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql, params)
            return acursor.rowcount

    async def abort_one(
            self,
            session: ISession,
            interval_in_minutes: int,
            project_id: str | None = None
    ) -> Task | None:
        project_filter = ""
        params = {
            'threshold': self._threshold(interval_in_minutes),
            'running': TaskStatus.RUNNING.value,
            'aborted': TaskStatus.ABORTED.value,
        }
        if project_id is not None:
            project_filter = "AND project->>'id' = %(project_id)s"
            params['project_id'] = project_id
        sql = """
            UPDATE %(table)s
            SET status = %%(aborted)s
            WHERE status = %%(running)s AND id = (
                SELECT id FROM %(table)s
                WHERE status = %%(running)s
                    AND remaining_number_of_tries <= 0
                    AND last_tried_at < %%(threshold)s
                    %(project_filter)s
                ORDER BY last_tried_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
            )
            RETURNING *
        """ % {
            'table': escape(self._table),
            'project_filter': project_filter,
        }
        return await self._fetch_one(session, sql, params, required=False)

    def _threshold(self, interval_in_minutes: int) -> datetime.datetime:
        return self._clock() - datetime.timedelta(minutes=interval_in_minutes)

    async def _fetch_one(self, session: ISession, sql: str, params: dict, required: bool = True) -> Task | None:
        async with self._extract_connection(session).cursor(row_factory=dict_row) as acursor:
            await acursor.execute(sql, params)
            row = await acursor.fetchone()
        if row is None:
            if required:
                raise NotFound('Task')
            return None
        return Task.from_state(row)

    async def setup(self, session: ISession):
        sql = """
            CREATE TABLE IF NOT EXISTS %(table)s (
                id VARCHAR(64) NOT NULL PRIMARY KEY,
                name VARCHAR(64) NOT NULL,
                status VARCHAR(16) NOT NULL,
                runs_at TIMESTAMPTZ NOT NULL,
                remaining_number_of_tries INTEGER NOT NULL,
                number_of_tried INTEGER NOT NULL DEFAULT 0,
                last_tried_at TIMESTAMPTZ NULL,
                project JSONB NULL,
                data JSONB NOT NULL DEFAULT '{}'::jsonb,
                execution_results JSONB NOT NULL DEFAULT '[]'::jsonb
            );
            CREATE INDEX IF NOT EXISTS %(claim_idx)s ON %(table)s (name, status, runs_at);
            CREATE INDEX IF NOT EXISTS %(last_tried_at_idx)s ON %(table)s (status, last_tried_at);
        """ % {
            'table': escape(self._table),
            'claim_idx': escape('%s_claim_idx' % self._table),
            'last_tried_at_idx': escape('%s_last_tried_at_idx' % self._table),
        }
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql)

    async def cleanup(self, session: ISession):
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute("DROP TABLE IF EXISTS %s" % escape(self._table))
