"""Error taxonomy for plan construction and step execution."""

from __future__ import annotations

from typing import Iterable, Optional


class ProvisorError(Exception):
    """Base class for all provisor errors."""


class InvalidPlanError(ProvisorError):
    """Raised when a plan cannot be constructed.

    Carries the ids of the offending steps so callers can point at them.
    """

    def __init__(self, message: str, step_ids: Iterable[str] = ()) -> None:
        self.step_ids = tuple(step_ids)
        if self.step_ids:
            message = f"{message}: {', '.join(self.step_ids)}"
        super().__init__(message)


class StepError(ProvisorError):
    """Error scoped to a single step execution attempt."""

    def __init__(
        self, step_id: str, message: str, attempt: Optional[int] = None
    ) -> None:
        self.step_id = step_id
        self.message = message
        self.attempt = attempt
        prefix = f"[{step_id}]"
        if attempt is not None:
            prefix += f" attempt {attempt}"
        super().__init__(f"{prefix}: {message}")


class PreconditionCheckError(StepError):
    """The precondition check itself errored (distinct from "not satisfied")."""


class ActionExecutionError(StepError):
    """The external collaborator failed or returned a non-zero status."""


class VerificationError(StepError):
    """The action reported success but the verification predicate failed."""


class StepTimeoutError(StepError):
    """The step exceeded its maximum duration."""


class StepCancelledError(StepError):
    """The step was cancelled while running."""


__all__ = [
    "ProvisorError",
    "InvalidPlanError",
    "StepError",
    "PreconditionCheckError",
    "ActionExecutionError",
    "VerificationError",
    "StepTimeoutError",
    "StepCancelledError",
]
