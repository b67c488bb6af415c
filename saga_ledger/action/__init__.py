from saga_ledger.action.domain.interfaces import IActionRepository
from saga_ledger.action.domain.model import (
    Action, ActionAttributes, ActionSearchConditions, ActionStatus, ActionType, Purpose, SortOrder
)
from saga_ledger.action.infrastructure.in_memory_action_repository import InMemoryActionRepository
from saga_ledger.action.infrastructure.pg_action_repository import PgActionRepository

__all__ = (
    'Action',
    'ActionAttributes',
    'ActionSearchConditions',
    'ActionStatus',
    'ActionType',
    'IActionRepository',
    'InMemoryActionRepository',
    'PgActionRepository',
    'Purpose',
    'SortOrder',
)
