import copy
import dataclasses
import datetime
import typing
import uuid

from saga_ledger.seedwork.domain.exceptions import NotFound
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.seedwork.domain.utils.clock import IClock, utcnow
from saga_ledger.task.domain.interfaces import ITaskRepository
from saga_ledger.task.domain.model import ExecutionResult, Task, TaskAttributes, TaskName, TaskStatus

__all__ = ('InMemoryTaskRepository',)


class InMemoryTaskRepository(ITaskRepository):
    _tasks: dict[str, Task]

    def __init__(self, clock: IClock = utcnow, id_factory: typing.Callable[[], str] = lambda: str(uuid.uuid4())):
        self._tasks = {}
        self._clock = clock
        self._id_factory = id_factory

    async def save(self, session: ISession, attributes: TaskAttributes) -> Task:
        task = Task(
            id=self._id_factory(),
            name=attributes.name,
            status=attributes.status,
            runs_at=attributes.runs_at,
            remaining_number_of_tries=attributes.remaining_number_of_tries,
            data=copy.deepcopy(attributes.data),
            project=copy.deepcopy(attributes.project),
        )
        self._tasks[task.id] = task
        return copy.deepcopy(task)

    async def execute_one_by_name(
            self,
            session: ISession,
            name: TaskName,
            project_id: str | None = None
    ) -> Task | None:
        now = self._clock()
        candidates = [
            t for t in self._tasks.values()
            if t.status is TaskStatus.READY
            and t.name == name
            and t.runs_at <= now
            and (project_id is None or t.project_id == project_id)
        ]
        if not candidates:
            return None
        task = min(candidates, key=lambda t: t.runs_at)
        return self._update(
            task,
            status=TaskStatus.RUNNING,
            remaining_number_of_tries=task.remaining_number_of_tries - 1,
            last_tried_at=now,
        )

    async def push_execution_result_by_id(
            self,
            session: ISession,
            id_: str,
            status: TaskStatus,
            result: ExecutionResult
    ) -> Task:
        task = self._get(id_)
        return self._update(
            task,
            status=TaskStatus(status),
            execution_results=task.execution_results + [result],
            number_of_tried=task.number_of_tried + 1,
            last_tried_at=self._clock(),
        )

    async def find_by_id(self, session: ISession, id_: str) -> Task:
        return copy.deepcopy(self._get(id_))

    async def retry(self, session: ISession, interval_in_minutes: int, project_id: str | None = None) -> int:
        threshold = self._threshold(interval_in_minutes)
        retried = 0
        for task in list(self._tasks.values()):
            if (task.status is TaskStatus.RUNNING
                    and task.remaining_number_of_tries > 0
                    and task.last_tried_at is not None
                    and task.last_tried_at < threshold
                    and (project_id is None or task.project_id == project_id)):
                self._update(task, status=TaskStatus.READY)
                retried += 1
        return retried

    async def abort_one(
            self,
            session: ISession,
            interval_in_minutes: int,
            project_id: str | None = None
    ) -> Task | None:
        threshold = self._threshold(interval_in_minutes)
        candidates = [
            t for t in self._tasks.values()
            if t.status is TaskStatus.RUNNING
            and t.remaining_number_of_tries <= 0
            and t.last_tried_at is not None
            and t.last_tried_at < threshold
            and (project_id is None or t.project_id == project_id)
        ]
        if not candidates:
            return None
        task = min(candidates, key=lambda t: t.last_tried_at)
        return self._update(task, status=TaskStatus.ABORTED)

    def _threshold(self, interval_in_minutes: int) -> datetime.datetime:
        return self._clock() - datetime.timedelta(minutes=interval_in_minutes)

    def _get(self, id_: str) -> Task:
        try:
            return self._tasks[id_]
        except KeyError:
            raise NotFound('Task')

    def _update(self, task: Task, **changes) -> Task:
        task = dataclasses.replace(task, **changes)
        self._tasks[task.id] = task
        return copy.deepcopy(task)
