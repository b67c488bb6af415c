"""Saga compensation support.

Forward steps record their undo; on failure the undo steps run in reverse
order. See ``Compensator``.
"""

from saga_ledger.saga.compensation import CompensationOutcome, Compensator

__all__ = (
    'CompensationOutcome',
    'Compensator',
)
