"""Compensation log - the backward path of an orchestrated saga.

Each completed forward step registers how to undo itself. On failure the
undo steps run last-in first-out, each one best-effort: a failing
compensation is logged and recorded, and the remaining ones still run.
The original error is what the caller rethrows.
"""
import dataclasses
import logging
import typing

from saga_ledger.observable.observable import Observable
from saga_ledger.seedwork.domain.utils.errors import error_to_dict

__all__ = (
    'CompensationOutcome',
    'Compensator',
)


ICompensation = typing.Callable[[], typing.Awaitable[typing.Any]]


@dataclasses.dataclass(frozen=True)
class CompensationOutcome:
    name: str
    succeeded: bool
    error: dict | None = None


class Compensator(Observable):
    """Events: ``compensated(outcome)``, ``compensation_failed(outcome)``."""

    def __init__(self):
        self._pending: list[tuple[str, ICompensation]] = []
        self._outcomes: list[CompensationOutcome] = []
        self._logger = logging.getLogger(".".join((type(self).__module__, type(self).__name__)))
        super().__init__()

    def push(self, name: str, compensation: ICompensation) -> None:
        self._pending.append((name, compensation))

    @property
    def is_in_progress(self) -> bool:
        return len(self._pending) > 0

    async def run(self, name: str, compensation: ICompensation) -> CompensationOutcome:
        """Runs one compensation immediately, never raising."""
        try:
            await compensation()
        except Exception as e:
            self._logger.warning("Compensation %s failed", name, exc_info=True)
            outcome = CompensationOutcome(name, False, error_to_dict(e))
            self._outcomes.append(outcome)
            await self.anotify('compensation_failed', outcome=outcome)
            return outcome
        outcome = CompensationOutcome(name, True)
        self._outcomes.append(outcome)
        await self.anotify('compensated', outcome=outcome)
        return outcome

    async def compensate(self) -> list[CompensationOutcome]:
        """Unwinds every pushed step, most recent first."""
        outcomes = []
        while self._pending:
            name, compensation = self._pending.pop()
            outcomes.append(await self.run(name, compensation))
        return outcomes

    @property
    def outcomes(self) -> list[CompensationOutcome]:
        return list(self._outcomes)

    @property
    def failed(self) -> list[CompensationOutcome]:
        return [o for o in self._outcomes if not o.succeeded]
