"""Core data model for provisioning plans and their execution results."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_RETRY_DELAY, NETWORK_RETRY_ATTEMPTS
from .utils.retry import compute_backoff


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.SKIPPED, StepStatus.FAILED)


class RunState(str, Enum):
    INITIALIZING = "initializing"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    ABORTED = "aborted"


class FailurePolicy(str, Enum):
    """What the orchestrator does once a step has failed."""

    ABORT = "abort"
    SKIP_REMAINING = "skip_remaining"
    CONTINUE_INDEPENDENT = "continue_independent"


class ConcurrencyClass(str, Enum):
    """Resource class a step competes in when steps run in parallel."""

    LOCAL = "local"
    NETWORK = "network"
    BUILD = "build"


class RetryPolicy(BaseModel):
    """How many times an action is attempted and how long to wait in between."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=1, ge=1)
    backoff: Literal["none", "linear", "exponential"] = "none"
    delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Return the wait after failed attempt number ``attempt``."""
        return compute_backoff(attempt, base=self.delay, jitter=0, strategy=self.backoff)

    @classmethod
    def network(
        cls,
        attempts: int = NETWORK_RETRY_ATTEMPTS,
        delay: float = DEFAULT_RETRY_DELAY,
    ) -> "RetryPolicy":
        """Preset for network fetches: a few attempts with linear backoff."""
        return cls(max_attempts=attempts, backoff="linear", delay=delay)


class Step(BaseModel):
    """Atomic declarative unit of provisioning work.

    ``precondition``, ``action`` and ``verify`` receive the ``HostContext``
    of the run and may be plain functions or coroutine functions. A
    satisfied precondition means the work is already done and the step is
    skipped. ``action`` returns an ``AdapterResult`` (or ``None``) and
    ``verify`` confirms the outcome independently of the exit status.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(min_length=1)
    description: str = ""
    depends_on: FrozenSet[str] = frozenset()
    action: Callable[..., Any]
    precondition: Optional[Callable[..., Any]] = None
    verify: Optional[Callable[..., Any]] = None
    on_failure: FailurePolicy = FailurePolicy.ABORT
    retry: RetryPolicy = RetryPolicy()
    timeout: Optional[float] = Field(default=None, gt=0)
    resources: FrozenSet[str] = frozenset()
    concurrency: ConcurrencyClass = ConcurrencyClass.LOCAL


class ExecutionResult(BaseModel):
    """Outcome of a single step within a run."""

    step_id: str
    status: StepStatus
    attempts: int = 0
    duration: float = 0.0
    output: str = ""
    stderr: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None
    caused_by: Optional[str] = None
    cancelled: bool = False
    verified: Optional[bool] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def blocks_dependents(self) -> bool:
        """``True`` when dependents of this step must not run."""
        if self.status is StepStatus.FAILED:
            return True
        return self.status is StepStatus.SKIPPED and self.caused_by is not None

    @classmethod
    def skipped(
        cls, step_id: str, caused_by: Optional[str] = None, reason: str = ""
    ) -> "ExecutionResult":
        now = _utcnow()
        return cls(
            step_id=step_id,
            status=StepStatus.SKIPPED,
            caused_by=caused_by,
            output=reason,
            started_at=now,
            finished_at=now,
        )


class Report(BaseModel):
    """Ordered results of one plan run plus its overall outcome."""

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    plan: str
    dry_run: bool = False
    results: List[ExecutionResult] = Field(default_factory=list)
    state: RunState = RunState.INITIALIZING
    status: Optional[RunStatus] = None
    caused_by: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    def add(self, result: ExecutionResult) -> None:
        self.results.append(result)

    def result_for(self, step_id: str) -> Optional[ExecutionResult]:
        return next((r for r in self.results if r.step_id == step_id), None)

    def failures(self) -> List[ExecutionResult]:
        return [r for r in self.results if r.status is StepStatus.FAILED]

    def finalize(
        self, state: RunState, status: RunStatus, caused_by: Optional[str] = None
    ) -> None:
        self.state = state
        self.status = status
        self.caused_by = caused_by
        self.finished_at = _utcnow()

    @property
    def exit_code(self) -> int:
        """Process exit code for this report: 0 success, 1 aborted, 2 partial."""
        if self.status is RunStatus.ABORTED:
            return 1
        if self.status is RunStatus.PARTIAL_FAILURE:
            return 2
        return 0
