import datetime
import logging

from saga_ledger.action.domain.model import Action
from saga_ledger.orchestration.errors import handle_service_error
from saga_ledger.seedwork.domain.session.interfaces import ISession
from saga_ledger.seedwork.domain.utils.clock import IClock, utcnow
from saga_ledger.seedwork.domain.utils.errors import error_to_dict
from saga_ledger.task.domain.model import Task, TaskAttributes, TaskName
from saga_ledger.task.domain.settings import TaskSettings

__all__ = ('BaseService',)


class BaseService:
    _settings: TaskSettings

    def __init__(self, settings: TaskSettings, clock: IClock = utcnow):
        self._settings = settings
        self._clock = clock
        self._logger = logging.getLogger(".".join((type(self).__module__, type(self).__name__)))

    async def _give_up(self, session: ISession, action: Action, error: BaseException) -> None:
        """Records the normalised failure on the action. A failure to record is
        logged and never replaces ``error``."""
        try:
            await self._settings.action_repository.give_up(
                session, action.type_of, action.id, error_to_dict(handle_service_error(error))
            )
        except Exception:
            self._logger.error("Could not give up action %s", action.id, exc_info=True)

    async def _enqueue(
            self,
            session: ISession,
            name: TaskName,
            data: dict,
            remaining_number_of_tries: int,
            project: dict | None = None,
            delay: float = 0
    ) -> Task:
        attributes = TaskAttributes(
            name=name,
            runs_at=self._clock() + datetime.timedelta(seconds=delay),
            remaining_number_of_tries=remaining_number_of_tries,
            data=data,
            project=project,
        )
        return await self._settings.task_repository.save(session, attributes)

    async def _enqueue_best_effort(self, session: ISession, name: TaskName, data: dict, *args, **kwargs) -> Task | None:
        try:
            return await self._enqueue(session, name, data, *args, **kwargs)
        except Exception:
            self._logger.warning("Could not enqueue %s task", name.value, exc_info=True)
            return None

