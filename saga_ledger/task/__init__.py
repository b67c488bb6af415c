from saga_ledger.task.domain.executor import TaskExecutor
from saga_ledger.task.domain.interfaces import ITaskRepository
from saga_ledger.task.domain.model import ExecutionResult, Task, TaskAttributes, TaskName, TaskStatus
from saga_ledger.task.domain.registry import TaskHandlerRegistry
from saga_ledger.task.domain.settings import TaskSettings
from saga_ledger.task.infrastructure.in_memory_task_repository import InMemoryTaskRepository
from saga_ledger.task.infrastructure.pg_task_repository import PgTaskRepository

__all__ = (
    'ExecutionResult',
    'ITaskRepository',
    'InMemoryTaskRepository',
    'PgTaskRepository',
    'Task',
    'TaskAttributes',
    'TaskExecutor',
    'TaskHandlerRegistry',
    'TaskName',
    'TaskSettings',
    'TaskStatus',
)
