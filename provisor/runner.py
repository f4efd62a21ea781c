"""Execution of a single step with idempotence, retry and verification."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional

from .adapters.base import AdapterResult
from .contracts import ExecutionResult, Step, StepStatus
from .errors import (
    ActionExecutionError,
    PreconditionCheckError,
    StepCancelledError,
    StepError,
    StepTimeoutError,
    VerificationError,
)
from .host import HostContext
from .utils import retry

logger = logging.getLogger(__name__)

Guard = Callable[[], AsyncContextManager[Any]]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _describe_failure(result: AdapterResult) -> str:
    detail = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ""
    summary = result.exit_info or "failed"
    return f"{summary}: {detail}" if detail else summary


class _Attempts:
    """Mutable progress shared with the attempt loop."""

    def __init__(self) -> None:
        self.count = 0
        self.output = ""
        self.stderr = ""


class StepRunner:
    """Runs one step: precondition, bounded retries, then verification.

    A satisfied precondition short-circuits to ``skipped`` without touching
    the host. Failed actions are retried according to the step's retry
    policy; a successful action whose verification fails is fatal and never
    retried. The step timeout covers every attempt and the waits between
    them.
    """

    def __init__(self, sleep: Optional[Callable[[float], Awaitable[None]]] = None) -> None:
        self._sleep = sleep

    async def _wait(self, delay: float) -> None:
        if self._sleep is not None:
            await self._sleep(delay)
        else:
            await retry.schedule_retry(delay)

    async def _check_precondition(self, step: Step, host: HostContext) -> bool:
        if step.precondition is None:
            return False
        try:
            return bool(await _resolve(step.precondition(host)))
        except Exception as exc:
            raise PreconditionCheckError(
                step.id, f"{type(exc).__name__}: {exc}"
            ) from exc

    async def _verify(self, step: Step, host: HostContext, attempt: int) -> None:
        if step.verify is None:
            return
        try:
            verified = bool(await _resolve(step.verify(host)))
        except Exception as exc:
            raise VerificationError(
                step.id, f"verification errored: {type(exc).__name__}: {exc}", attempt
            ) from exc
        if not verified:
            raise VerificationError(
                step.id, "action reported success but verification failed", attempt
            )

    async def _attempt_loop(
        self, step: Step, host: HostContext, guard: Optional[Guard], progress: _Attempts
    ) -> None:
        last_error: StepError = ActionExecutionError(step.id, "no attempt was made")
        for attempt in range(1, step.retry.max_attempts + 1):
            progress.count = attempt
            async with guard() if guard is not None else nullcontext():
                try:
                    outcome = await _resolve(step.action(host))
                except Exception as exc:
                    last_error = ActionExecutionError(
                        step.id, f"{type(exc).__name__}: {exc}", attempt
                    )
                else:
                    if isinstance(outcome, AdapterResult) and not outcome.success:
                        progress.stderr = outcome.stderr
                        last_error = ActionExecutionError(
                            step.id, _describe_failure(outcome), attempt
                        )
                    else:
                        if isinstance(outcome, AdapterResult):
                            progress.output = outcome.stdout
                            progress.stderr = outcome.stderr
                        await self._verify(step, host, attempt)
                        return

            logger.warning(str(last_error))
            if attempt < step.retry.max_attempts:
                await self._wait(step.retry.delay_for(attempt))

        raise last_error

    async def run(
        self, step: Step, host: HostContext, guard: Optional[Guard] = None
    ) -> ExecutionResult:
        """Execute ``step`` against ``host`` and return its terminal result."""
        started_at = datetime.now(timezone.utc)
        clock = time.monotonic()
        progress = _Attempts()
        error: Optional[StepError] = None
        cancelled = False

        try:
            if await self._check_precondition(step, host):
                logger.info(f"Step {step.id} skipped: precondition satisfied")
                return ExecutionResult(
                    step_id=step.id,
                    status=StepStatus.SKIPPED,
                    output="precondition satisfied",
                    started_at=started_at,
                    finished_at=datetime.now(timezone.utc),
                    duration=time.monotonic() - clock,
                )
            logger.info(f"Step {step.id} running: {step.description or step.id}")
            if step.timeout is not None:
                await asyncio.wait_for(
                    self._attempt_loop(step, host, guard, progress), timeout=step.timeout
                )
            else:
                await self._attempt_loop(step, host, guard, progress)
        except asyncio.TimeoutError:
            error = StepTimeoutError(
                step.id, f"exceeded maximum duration of {step.timeout}s", progress.count
            )
        except asyncio.CancelledError:
            cancelled = True
            error = StepCancelledError(step.id, "cancelled", progress.count or None)
        except StepError as exc:
            error = exc

        finished_at = datetime.now(timezone.utc)
        duration = time.monotonic() - clock
        if error is None:
            logger.info(f"Step {step.id} succeeded after {progress.count} attempt(s)")
            return ExecutionResult(
                step_id=step.id,
                status=StepStatus.SUCCEEDED,
                attempts=progress.count,
                output=progress.output,
                stderr=progress.stderr,
                started_at=started_at,
                finished_at=finished_at,
                duration=duration,
            )

        logger.error(str(error))
        return ExecutionResult(
            step_id=step.id,
            status=StepStatus.FAILED,
            attempts=progress.count,
            output=progress.output,
            stderr=progress.stderr,
            error=str(error),
            error_type=type(error).__name__,
            cancelled=cancelled,
            started_at=started_at,
            finished_at=finished_at,
            duration=duration,
        )

    async def predict(self, step: Step, host: HostContext) -> ExecutionResult:
        """Dry-run evaluation: check predicates, never run the action."""
        started_at = datetime.now(timezone.utc)
        try:
            satisfied = await self._check_precondition(step, host)
        except PreconditionCheckError as exc:
            return ExecutionResult(
                step_id=step.id,
                status=StepStatus.FAILED,
                error=str(exc),
                error_type=type(exc).__name__,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )

        verified: Optional[bool] = None
        if step.verify is not None:
            try:
                verified = bool(await _resolve(step.verify(host)))
            except Exception as exc:
                logger.debug(f"Dry-run verification of {step.id} errored: {exc}")
                verified = False

        return ExecutionResult(
            step_id=step.id,
            status=StepStatus.SKIPPED if satisfied else StepStatus.PENDING,
            output="would skip: precondition satisfied" if satisfied else "would run",
            verified=verified,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
