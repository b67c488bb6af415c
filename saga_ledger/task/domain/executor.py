import asyncio
import logging
import typing

from saga_ledger.observable.observable import Observable
from saga_ledger.seedwork.domain.session.interfaces import ISessionPool
from saga_ledger.seedwork.domain.utils.clock import IClock, utcnow
from saga_ledger.seedwork.domain.utils.errors import error_to_dict
from saga_ledger.task.domain.interfaces import ITaskRepository
from saga_ledger.task.domain.model import ExecutionResult, Task, TaskName, TaskStatus
from saga_ledger.task.domain.registry import TaskHandlerRegistry

__all__ = ('TaskExecutor',)


class TaskExecutor(Observable):
    """Runs claimed tasks through their handlers and records every attempt.

    A failed attempt is recorded with the task status left as it was
    (Running). The task is then neither picked up again nor lost: it waits
    for ``retry`` or ``abort``.

    Events: ``task_executed(task)``, ``task_failed(task, error)``,
    ``aborted(task, last_error)``.
    """
    _session_pool: ISessionPool
    _repository: ITaskRepository
    _registry: TaskHandlerRegistry

    def __init__(
            self,
            session_pool: ISessionPool,
            repository: ITaskRepository,
            registry: TaskHandlerRegistry,
            settings: typing.Any,
            clock: IClock = utcnow
    ):
        self._session_pool = session_pool
        self._repository = repository
        self._registry = registry
        self._settings = settings
        self._clock = clock
        self._logger = logging.getLogger(".".join((type(self).__module__, type(self).__name__)))
        super().__init__()

    async def execute(self, task: Task) -> Task:
        executed_at = self._clock()
        self._logger.debug("Executing task %s (%s)", task.id, task.name.value)
        try:
            handler = self._registry.resolve(task.name)
            await handler(task.data)(self._settings)
        except Exception as e:
            self._logger.warning("Task %s (%s) failed", task.id, task.name.value, exc_info=True)
            result = ExecutionResult(executed_at=executed_at, end_date=self._clock(), error=error_to_dict(e))
            async with self._session_pool.session() as session:
                task = await self._repository.push_execution_result_by_id(session, task.id, task.status, result)
            await self.anotify('task_failed', task=task, error=e)
            return task

        result = ExecutionResult(executed_at=executed_at, end_date=self._clock(), error='')
        async with self._session_pool.session() as session:
            task = await self._repository.push_execution_result_by_id(
                session, task.id, TaskStatus.EXECUTED, result
            )
        await self.anotify('task_executed', task=task)
        return task

    async def execute_by_name(self, name: TaskName, project_id: str | None = None) -> Task | None:
        """Claims and executes one task. Claim failures are logged, never raised."""
        try:
            async with self._session_pool.session() as session:
                task = await self._repository.execute_one_by_name(session, name, project_id)
        except Exception:
            self._logger.warning("Claiming a %s task failed", getattr(name, 'value', name), exc_info=True)
            return None
        if task is None:
            return None
        return await self.execute(task)

    async def retry(self, interval_in_minutes: int, project_id: str | None = None) -> int:
        async with self._session_pool.session() as session:
            retried = await self._repository.retry(session, interval_in_minutes, project_id)
        if retried:
            self._logger.info("%s stuck task(s) moved back to Ready", retried)
        return retried

    async def abort(self, interval_in_minutes: int, project_id: str | None = None) -> Task | None:
        async with self._session_pool.session() as session:
            task = await self._repository.abort_one(session, interval_in_minutes, project_id)
        if task is None:
            return None
        last_error = task.execution_results[-1].error if task.execution_results else ''
        self._logger.error(
            "Task aborted: id=%s name=%s runs_at=%s last_tried_at=%s number_of_tried=%s",
            task.id, task.name.value, task.runs_at.isoformat(),
            task.last_tried_at.isoformat() if task.last_tried_at else '', task.number_of_tried
        )
        await self.anotify('aborted', task=task, last_error=last_error)
        return task

    async def poll(
            self,
            name: TaskName,
            interval: float,
            stop: asyncio.Event,
            project_id: str | None = None
    ) -> None:
        """Executes tasks of one kind until ``stop`` is set.

        Sleeps ``interval`` seconds only when nothing was claimable.
        """
        while not stop.is_set():
            task = await self.execute_by_name(name, project_id)
            if task is not None:
                continue
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def maintain(
            self,
            retry_interval_in_minutes: int,
            abort_interval_in_minutes: int,
            period: float,
            stop: asyncio.Event,
            project_id: str | None = None
    ) -> None:
        """Every ``period`` seconds until ``stop`` is set, moves stalled tasks
        back to Ready and aborts every task that ran out of tries.

        A failed round is logged and the next one still runs.
        """
        while not stop.is_set():
            try:
                await self.retry(retry_interval_in_minutes, project_id)
                while await self.abort(abort_interval_in_minutes, project_id) is not None:
                    pass
            except Exception:
                self._logger.warning("Task maintenance round failed", exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=period)
            except asyncio.TimeoutError:
                pass
