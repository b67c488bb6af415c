import enum
import typing
import uuid

from psycopg.rows import dict_row

from saga_ledger.action.domain.interfaces import IActionRepository
from saga_ledger.action.domain.model import (
    Action, ActionAttributes, ActionSearchConditions, ActionStatus, ActionType, SortOrder, validate_sort
)
from saga_ledger.seedwork.domain.exceptions import NotFound
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.seedwork.domain.utils.clock import IClock, utcnow
from saga_ledger.seedwork.domain.utils.errors import error_to_dict
from saga_ledger.seedwork.infrastructure.session.pg_session import extract_connection
from saga_ledger.seedwork.infrastructure.utils.json import to_jsonb
from saga_ledger.seedwork.infrastructure.utils.pg import escape

__all__ = ('PgActionRepository',)


_JSON_COLUMNS = (
    'agent', 'recipient', 'object', 'result', 'error', 'purpose', 'project', 'instrument', 'potential_actions'
)

_COLUMNS = ('id', 'type_of', 'action_status', 'start_date', 'end_date') + _JSON_COLUMNS


def _value(obj: typing.Any) -> typing.Any:
    if isinstance(obj, enum.Enum):
        return obj.value
    return obj


class PgActionRepository(IActionRepository):
    """Action ledger on PostgreSQL.

    Transitions are single ``UPDATE ... RETURNING`` statements whose filter
    carries the statuses the action may move from.
    """
    _extract_connection = staticmethod(extract_connection)
    _table: str = 'actions'

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

    async def start(self, session: ISession, attributes: ActionAttributes) -> Action:
        action = Action.from_attributes(self._id_factory(), attributes, ActionStatus.ACTIVE, self._clock())
        return await self._insert(session, action)

    async def complete(self, session: ISession, type_of: str, id_: str, result: typing.Any) -> Action:
        return await self._transit(
            session, type_of, id_, (ActionStatus.ACTIVE,),
            action_status=ActionStatus.COMPLETED.value, result=to_jsonb(result), end_date=self._clock()
        )

    async def cancel(self, session: ISession, type_of: str, id_: str, *, allow_completed: bool = False) -> Action:
        allowed_from = (ActionStatus.ACTIVE, ActionStatus.COMPLETED) if allow_completed else (ActionStatus.ACTIVE,)
        return await self._transit(
            session, type_of, id_, allowed_from,
            action_status=ActionStatus.CANCELED.value
        )

    async def give_up(self, session: ISession, type_of: str, id_: str, error: typing.Any) -> Action:
        if isinstance(error, BaseException):
            error = error_to_dict(error)
        return await self._transit(
            session, type_of, id_, (ActionStatus.ACTIVE,),
            action_status=ActionStatus.FAILED.value, error=to_jsonb(error), end_date=self._clock()
        )

    async def find_by_id(self, session: ISession, type_of: str, id_: str) -> Action:
        sql = """
            SELECT * FROM %s WHERE type_of = %%(type_of)s AND id = %%(id)s
        """ % escape(self._table)
        async with self._extract_connection(session).cursor(row_factory=dict_row) as acursor:
            await acursor.execute(sql, {'type_of': _value(type_of), 'id': id_})
            row = await acursor.fetchone()
        if row is None:
            raise NotFound('Action')
        return Action.from_state(row)

    async def search_by_purpose(
            self,
            session: ISession,
            purpose_type_of: str,
            purpose_id: str | None = None,
            type_of: str | None = None,
            sort: SortOrder | None = None
    ) -> list[Action]:
        where = ["purpose->>'type_of' = %(purpose_type_of)s"]
        params = {'purpose_type_of': _value(purpose_type_of)}
        if purpose_id is not None:
            where.append("purpose->>'id' = %(purpose_id)s")
            params['purpose_id'] = purpose_id
        if type_of is not None:
            where.append("type_of = %(type_of)s")
            params['type_of'] = _value(type_of)
        return await self._select(session, where, params, sort)

    async def search_by_order_number(
            self,
            session: ISession,
            order_number: str,
            sort: SortOrder | None = None
    ) -> list[Action]:
        where = ["(object->>'order_number' = %(order_number)s OR purpose->>'order_number' = %(order_number)s)"]
        return await self._select(session, where, {'order_number': order_number}, sort)

    async def search(self, session: ISession, conditions: ActionSearchConditions) -> list[Action]:
        where, params = self._make_conditions(conditions)
        limit = None
        offset = None
        if conditions.limit is not None and conditions.page is not None:
            limit = conditions.limit
            offset = conditions.limit * (conditions.page - 1)
        return await self._select(session, where, params, conditions.sort, limit, offset)

    async def count(self, session: ISession, conditions: ActionSearchConditions) -> int:
        where, params = self._make_conditions(conditions)
        sql = "SELECT COUNT(*) FROM %s %s" % (escape(self._table), self._where(where))
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql, params)
            return (await acursor.fetchone())[0]

    async def print_ticket(self, session: ISession, agent_id: str, ticket_token: str, project: dict) -> Action:
        now = self._clock()
        action = Action(
            id=self._id_factory(),
            type_of=ActionType.PRINT.value,
            action_status=ActionStatus.COMPLETED,
            start_date=now,
            end_date=now,
            agent={'type_of': 'Person', 'id': agent_id},
            object={'type_of': 'Ticket', 'ticket_token': ticket_token},
            project=project,
        )
        return await self._insert(session, action)

    async def search_print_ticket(self, session: ISession, agent_id: str, ticket_token: str) -> list[Action]:
        where = [
            "type_of = %(type_of)s",
            "agent->>'id' = %(agent_id)s",
            "object->>'type_of' = 'Ticket'",
            "object->>'ticket_token' = %(ticket_token)s",
        ]
        params = {'type_of': ActionType.PRINT.value, 'agent_id': agent_id, 'ticket_token': ticket_token}
        return await self._select(session, where, params, None)

    async def _insert(self, session: ISession, action: Action) -> Action:
        state = action.export()
        params = {
            name: to_jsonb(state[name]) if name in _JSON_COLUMNS else state[name]
            for name in _COLUMNS
        }
        sql = """
            INSERT INTO %s (%s)
            VALUES (%s)
            RETURNING *
        """ % (
            escape(self._table),
            ", ".join(escape(name) for name in _COLUMNS),
            ", ".join("%%(%s)s" % name for name in _COLUMNS)
        )
        async with self._extract_connection(session).cursor(row_factory=dict_row) as acursor:
            await acursor.execute(sql, params)
            return Action.from_state(await acursor.fetchone())

    async def _transit(
            self,
            session: ISession,
            type_of: str,
            id_: str,
            allowed_from: typing.Sequence[ActionStatus],
            **changes
    ) -> Action:
        sql = """
            UPDATE %s SET %s
            WHERE type_of = %%(__type_of)s AND id = %%(__id)s AND action_status = ANY(%%(__allowed_from)s)
            RETURNING *
        """ % (
            escape(self._table),
            ", ".join("%s = %%(%s)s" % (escape(name), name) for name in changes)
        )
        params = dict(changes)
        params.update({
            '__type_of': _value(type_of),
            '__id': id_,
            '__allowed_from': [status.value for status in allowed_from],
        })
        async with self._extract_connection(session).cursor(row_factory=dict_row) as acursor:
            await acursor.execute(sql, params)
            row = await acursor.fetchone()
        if row is None:
            raise NotFound('Action')
        return Action.from_state(row)

    async def _select(
            self,
            session: ISession,
            where: list[str],
            params: dict,
            sort: SortOrder | None,
            limit: int | None = None,
            offset: int | None = None
    ) -> list[Action]:
        sql = "SELECT * FROM %s %s %s" % (escape(self._table), self._where(where), self._order_by(sort))
        if limit is not None:
            sql += " LIMIT %(__limit)s OFFSET %(__offset)s"
            params = dict(params, __limit=limit, __offset=offset)
        async with self._extract_connection(session).cursor(row_factory=dict_row) as acursor:
            await acursor.execute(sql, params)
            rows = await acursor.fetchall()
        return [Action.from_state(row) for row in rows]

    @staticmethod
    def _where(where: list[str]) -> str:
        if not where:
            return ""
        return "WHERE " + " AND ".join(where)

    @staticmethod
    def _order_by(sort: SortOrder | None) -> str:
        if not validate_sort(sort):
            return ""
        return "ORDER BY " + ", ".join(
            "%s ASC NULLS FIRST" % escape(field) if direction > 0 else "%s DESC NULLS LAST" % escape(field)
            for field, direction in sort.items()
        )

    @staticmethod
    def _make_conditions(c: ActionSearchConditions) -> tuple[list[str], dict]:
        where = []
        params = {}
        any_of = (
            ('project_ids', "project->>'id'", c.project_ids),
            ('action_statuses', "action_status", c.action_statuses),
            ('purpose_type_ofs', "purpose->>'type_of'", c.purpose_type_ofs),
            ('purpose_ids', "purpose->>'id'", c.purpose_ids),
            ('object_type_ofs', "object->>'type_of'", c.object_type_ofs),
            ('object_ids', "object->>'id'", c.object_ids),
            ('object_order_numbers', "object->>'order_number'", c.object_order_numbers),
            ('object_event_ids', "object->'event'->>'id'", c.object_event_ids),
        )
        for name, expression, values in any_of:
            if values is not None:
                where.append("%s = ANY(%%(%s)s)" % (expression, name))
                params[name] = [_value(v) for v in values]
        if c.type_of is not None:
            where.append("type_of = %(type_of)s")
            params['type_of'] = c.type_of
        if c.start_from is not None:
            where.append("start_date >= %(start_from)s")
            params['start_from'] = c.start_from
        if c.start_through is not None:
            where.append("start_date <= %(start_through)s")
            params['start_through'] = c.start_through
        return where, params

    async def setup(self, session: ISession):
        table = escape(self._table)
        sql = """
            CREATE TABLE IF NOT EXISTS %(table)s (
                id VARCHAR(64) NOT NULL PRIMARY KEY,
                type_of VARCHAR(64) NOT NULL,
                action_status VARCHAR(32) NOT NULL,
                start_date TIMESTAMPTZ NOT NULL,
                end_date TIMESTAMPTZ NULL,
                agent JSONB NULL,
                recipient JSONB NULL,
                object JSONB NULL,
                result JSONB NULL,
                error JSONB NULL,
                purpose JSONB NULL,
                project JSONB NULL,
                instrument JSONB NULL,
                potential_actions JSONB NULL,
                CHECK (end_date IS NULL OR start_date <= end_date)
            );
            CREATE INDEX IF NOT EXISTS %(purpose_idx)s ON %(table)s ((purpose->>'type_of'), (purpose->>'id'));
            CREATE INDEX IF NOT EXISTS %(object_order_number_idx)s ON %(table)s ((object->>'order_number'));
            CREATE INDEX IF NOT EXISTS %(purpose_order_number_idx)s ON %(table)s ((purpose->>'order_number'));
            CREATE INDEX IF NOT EXISTS %(start_date_idx)s ON %(table)s (start_date);
        """ % {
            'table': table,
            'purpose_idx': escape('%s_purpose_idx' % self._table),
            'object_order_number_idx': escape('%s_object_order_number_idx' % self._table),
            'purpose_order_number_idx': escape('%s_purpose_order_number_idx' % self._table),
            'start_date_idx': escape('%s_start_date_idx' % self._table),
        }
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute(sql)

    async def cleanup(self, session: ISession):
        async with self._extract_connection(session).cursor() as acursor:
            await acursor.execute("DROP TABLE IF EXISTS %s" % escape(self._table))
