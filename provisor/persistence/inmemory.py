"""In-memory implementation of the run repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from ..contracts import ExecutionResult
from .models import RunRecord, StepRecord
from .repository import RunRepository


class InMemoryRunRepository(RunRepository):
    """Store run history in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, RunRecord] = {}
        self._step_id = 0

    # ------------------------------------------------------------------
    async def create_run(self, run_id: str, plan: str, dry_run: bool = False) -> None:
        self._runs[run_id] = RunRecord(
            run_id=run_id,
            plan=plan,
            dry_run=dry_run,
            started_at=datetime.now(timezone.utc),
        )

    async def record_step(self, run_id: str, result: ExecutionResult) -> None:
        run = self._runs.get(run_id)
        if not run:
            return
        # one record per step and run
        if any(step.step_id == result.step_id for step in run.steps):
            return
        self._step_id += 1
        run.steps.append(
            StepRecord(
                id=self._step_id,
                run_id=run_id,
                step_id=result.step_id,
                status=result.status.value,
                attempts=result.attempts,
                duration=result.duration,
                caused_by=result.caused_by,
                error=result.error,
                started_at=result.started_at,
                completed_at=result.finished_at,
            )
        )

    async def finish_run(self, run_id: str, status: str) -> None:
        run = self._runs.get(run_id)
        if run:
            run.status = status
            run.finished_at = datetime.now(timezone.utc)

    async def get_run(self, run_id: str) -> RunRecord | None:
        return self._runs.get(run_id)

    async def list_runs(self) -> list[RunRecord]:
        return list(self._runs.values())
