"""Data models for the persisted run history."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StepRecord(BaseModel):
    """Record of an individual step result within a run."""

    id: Optional[int] = None
    run_id: str
    step_id: str
    status: str
    attempts: int = 0
    duration: float = 0.0
    caused_by: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class RunRecord(BaseModel):
    """Persisted plan run."""

    run_id: str
    plan: str
    dry_run: bool = False
    status: str = "in_progress"
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    steps: list[StepRecord] = Field(default_factory=list)
