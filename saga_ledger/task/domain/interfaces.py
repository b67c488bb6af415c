import typing
from abc import ABCMeta, abstractmethod

from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.task.domain.model import ExecutionResult, Task, TaskAttributes, TaskName, TaskStatus

__all__ = (
    "ITaskRepository",
)


class ITaskRepository(typing.Protocol, metaclass=ABCMeta):

    @abstractmethod
    async def save(self, session: ISession, attributes: TaskAttributes) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def execute_one_by_name(
            self,
            session: ISession,
            name: TaskName,
            project_id: str | None = None
    ) -> Task | None:
        """Claims one Ready task whose ``runs_at`` has come.

        The claim is a single atomic write: the task becomes Running and
        loses one remaining try. Two concurrent callers never get the same
        task. Returns None when nothing is claimable.
        """
        raise NotImplementedError

    @abstractmethod
    async def push_execution_result_by_id(
            self,
            session: ISession,
            id_: str,
            status: TaskStatus,
            result: ExecutionResult
    ) -> Task:
        """Appends an attempt, bumps ``number_of_tried`` and ``last_tried_at``,
        and sets ``status``."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(self, session: ISession, id_: str) -> Task:
        raise NotImplementedError

    @abstractmethod
    async def retry(self, session: ISession, interval_in_minutes: int, project_id: str | None = None) -> int:
        """Moves Running tasks with tries left and no attempt for
        ``interval_in_minutes`` back to Ready. Returns how many moved."""
        raise NotImplementedError

    @abstractmethod
    async def abort_one(
            self,
            session: ISession,
            interval_in_minutes: int,
            project_id: str | None = None
    ) -> Task | None:
        """Moves one Running task that has no tries left to Aborted."""
        raise NotImplementedError
