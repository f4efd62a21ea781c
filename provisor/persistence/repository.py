"""Repository abstraction for the run history."""

from __future__ import annotations

from typing import Protocol

from ..contracts import ExecutionResult
from .models import RunRecord


class RunRepository(Protocol):
    """Protocol for run history backends."""

    async def create_run(self, run_id: str, plan: str, dry_run: bool = False) -> None:
        """Persist the start of a run."""

    async def record_step(self, run_id: str, result: ExecutionResult) -> None:
        """Record the terminal result of a step."""

    async def finish_run(self, run_id: str, status: str) -> None:
        """Mark the run as finished with its overall status."""

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Retrieve the run by id."""

    async def list_runs(self) -> list[RunRecord]:
        """Return all persisted runs, oldest first."""
