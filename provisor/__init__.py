"""Provisor: declarative, idempotent host provisioning."""

from .contracts import (
    ExecutionResult,
    FailurePolicy,
    Report,
    RetryPolicy,
    RunState,
    RunStatus,
    Step,
    StepStatus,
)
from .errors import InvalidPlanError, ProvisorError, StepError
from .host import HostContext
from .orchestrator import Orchestrator
from .persistence import get_repository
from .plan import Plan
from .runner import StepRunner

__version__ = "0.1.0"
__all__ = [
    "ExecutionResult",
    "FailurePolicy",
    "HostContext",
    "InvalidPlanError",
    "Orchestrator",
    "Plan",
    "ProvisorError",
    "Report",
    "RetryPolicy",
    "RunState",
    "RunStatus",
    "Step",
    "StepError",
    "StepRunner",
    "StepStatus",
    "get_repository",
]
