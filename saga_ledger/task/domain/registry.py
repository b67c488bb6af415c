import typing

from saga_ledger.seedwork.domain.exceptions import Argument, NotFound
from saga_ledger.task.domain.model import TaskName

__all__ = (
    "ITaskOperation",
    "ITaskHandler",
    "TaskHandlerRegistry",
)


S = typing.TypeVar("S")

# handler(data) returns an operation; the operation runs against the settings bundle.
ITaskOperation = typing.Callable[[S], typing.Awaitable[typing.Any]]
ITaskHandler = typing.Callable[[dict], ITaskOperation]


class TaskHandlerRegistry:
    """Maps every ``TaskName`` to its handler.

    Populated once at startup; ``ensure_complete()`` fails fast when some
    task kind has no handler, instead of failing at dispatch time.
    """
    _handlers: dict[TaskName, ITaskHandler]

    def __init__(self, handlers: typing.Mapping[TaskName, ITaskHandler] | None = None):
        self._handlers = {}
        for name, handler in (handlers or {}).items():
            self.register(name, handler)

    def register(self, name: TaskName, handler: ITaskHandler) -> None:
        try:
            name = TaskName(name)
        except ValueError:
            raise Argument('name', 'Unknown task name: %s.' % name)
        self._handlers[name] = handler

    def resolve(self, name: TaskName) -> ITaskHandler:
        try:
            return self._handlers[TaskName(name)]
        except (KeyError, ValueError):
            raise NotFound('TaskHandler', 'No handler registered for task %s.' % getattr(name, 'value', name))

    def ensure_complete(self) -> None:
        missing = [name.value for name in TaskName if name not in self._handlers]
        if missing:
            raise NotFound('TaskHandler', 'No handler registered for tasks: %s.' % ', '.join(missing))

    def __contains__(self, name: TaskName) -> bool:
        return name in self._handlers
