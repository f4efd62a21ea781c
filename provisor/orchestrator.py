"""Plan traversal: scheduling, failure propagation and cancellation."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager, nullcontext
from typing import Dict, List, Mapping, Optional

from .config import ProvisorConfig
from .constants import (
    DEFAULT_BUILD_CONCURRENCY,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NETWORK_CONCURRENCY,
)
from .contracts import (
    ConcurrencyClass,
    ExecutionResult,
    FailurePolicy,
    Report,
    RunState,
    RunStatus,
    Step,
    StepStatus,
)
from .errors import StepCancelledError
from .host import HostContext
from .persistence import RunRepository
from .plan import Plan
from .runner import Guard, StepRunner

logger = logging.getLogger(__name__)


class Orchestrator:
    """Walks a plan in dependency order and aggregates a ``Report``.

    With ``max_workers=1`` (the default) steps run strictly one after the
    other in the plan's topological order. Larger values let independent
    branches run in parallel, bounded per concurrency class; steps sharing
    a resource path never run their actions at the same time.
    """

    def __init__(
        self,
        runner: Optional[StepRunner] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        limits: Optional[Mapping[ConcurrencyClass, int]] = None,
        repository: Optional[RunRepository] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._runner = runner or StepRunner()
        self._max_workers = max_workers
        self._limits: Dict[ConcurrencyClass, int] = {
            ConcurrencyClass.NETWORK: DEFAULT_NETWORK_CONCURRENCY,
            ConcurrencyClass.BUILD: DEFAULT_BUILD_CONCURRENCY,
            **(limits or {}),
        }
        self._repository = repository
        self._state = RunState.INITIALIZING
        self._step_states: Dict[str, StepStatus] = {}
        self._running: Dict[asyncio.Task, str] = {}
        self._semaphores: Dict[ConcurrencyClass, asyncio.Semaphore] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._cancel_requested = False

    @classmethod
    def from_config(
        cls, config: ProvisorConfig, repository: Optional[RunRepository] = None
    ) -> "Orchestrator":
        return cls(
            max_workers=config.concurrency.max_workers,
            limits={
                ConcurrencyClass.NETWORK: config.concurrency.network,
                ConcurrencyClass.BUILD: config.concurrency.build,
            },
            repository=repository,
        )

    # ------------------------------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state

    def step_state(self, step_id: str) -> StepStatus:
        return self._step_states[step_id]

    def cancel(self) -> None:
        """Cancel the run: in-flight steps fail as cancelled and the run aborts."""
        if self._state is not RunState.EXECUTING:
            return
        logger.warning("Cancellation requested, stopping in-flight steps")
        self._cancel_requested = True
        for task in self._running:
            task.cancel()

    # ------------------------------------------------------------------
    async def run(self, plan: Plan, host: HostContext, dry_run: bool = False) -> Report:
        """Execute (or, with ``dry_run``, predict) ``plan`` against ``host``."""
        report = Report(plan=plan.name, dry_run=dry_run)
        self._state = RunState.INITIALIZING
        self._step_states = {step_id: StepStatus.PENDING for step_id in plan.order}
        self._running = {}
        self._locks = {}
        self._cancel_requested = False
        self._semaphores = {
            cls: asyncio.Semaphore(limit) for cls, limit in self._limits.items()
        }
        if self._repository is not None:
            await self._repository.create_run(report.run_id, plan.name, dry_run)

        self._state = report.state = RunState.EXECUTING
        logger.info(
            f"{'Predicting' if dry_run else 'Running'} plan {plan.name} ({len(plan)} steps)"
        )
        if dry_run:
            await self._predict(plan, host, report)
        else:
            await self._execute(plan, host, report)

        self._state = report.state
        if self._repository is not None:
            await self._repository.finish_run(report.run_id, report.status.value)
        logger.info(f"Plan {plan.name} finished: {report.state.value}/{report.status.value}")
        return report

    async def _record(self, report: Report, result: ExecutionResult) -> None:
        report.add(result)
        self._step_states[result.step_id] = result.status
        if self._repository is not None:
            await self._repository.record_step(report.run_id, result)

    async def _predict(self, plan: Plan, host: HostContext, report: Report) -> None:
        for step in plan:
            await self._record(report, await self._runner.predict(step, host))
        failures = report.failures()
        if failures:
            report.finalize(RunState.COMPLETED, RunStatus.PARTIAL_FAILURE, failures[0].step_id)
        else:
            report.finalize(RunState.COMPLETED, RunStatus.SUCCESS)

    # ------------------------------------------------------------------
    def _guard_for(self, step: Step) -> Optional[Guard]:
        if not step.resources:
            return None
        locks = [self._locks.setdefault(path, asyncio.Lock()) for path in sorted(step.resources)]

        @asynccontextmanager
        async def guard():
            async with AsyncExitStack() as stack:
                for lock in locks:
                    await stack.enter_async_context(lock)
                yield

        return guard

    async def _run_step(self, step: Step, host: HostContext) -> ExecutionResult:
        semaphore = self._semaphores.get(step.concurrency)
        async with semaphore if semaphore is not None else nullcontext():
            self._step_states[step.id] = StepStatus.RUNNING
            return await self._runner.run(step, host, guard=self._guard_for(step))

    @staticmethod
    def _collect(task: asyncio.Task, step_id: str) -> ExecutionResult:
        if task.cancelled():
            error = StepCancelledError(step_id, "cancelled before start")
            return ExecutionResult(
                step_id=step_id,
                status=StepStatus.FAILED,
                error=str(error),
                error_type=type(error).__name__,
                cancelled=True,
            )
        exc = task.exception()
        if exc is not None:
            logger.exception(f"Unexpected error while running {step_id}", exc_info=exc)
            return ExecutionResult(
                step_id=step_id,
                status=StepStatus.FAILED,
                error=f"{type(exc).__name__}: {exc}",
                error_type=type(exc).__name__,
            )
        return task.result()

    async def _execute(self, plan: Plan, host: HostContext, report: Report) -> None:
        position = {step_id: index for index, step_id in enumerate(plan.order)}
        pending: List[str] = list(plan.order)
        results: Dict[str, ExecutionResult] = {}
        halted_by: Optional[str] = None
        halt_policy: Optional[FailurePolicy] = None

        async def record(result: ExecutionResult) -> None:
            results[result.step_id] = result
            await self._record(report, result)

        try:
            while pending or self._running:
                if self._cancel_requested and halt_policy is not FailurePolicy.ABORT:
                    halt_policy = FailurePolicy.ABORT

                if halt_policy is None:
                    for step_id in list(pending):
                        if len(self._running) >= self._max_workers:
                            break
                        step = plan.get(step_id)
                        if any(dep not in results for dep in step.depends_on):
                            continue
                        pending.remove(step_id)
                        blockers = sorted(
                            (dep for dep in step.depends_on if results[dep].blocks_dependents),
                            key=position.__getitem__,
                        )
                        if blockers:
                            blocker = results[blockers[0]]
                            cause = blocker.caused_by or blocker.step_id
                            logger.info(f"Step {step_id} skipped: depends on failed {cause}")
                            await record(
                                ExecutionResult.skipped(
                                    step_id, caused_by=cause, reason=f"blocked by {cause}"
                                )
                            )
                            continue
                        task = asyncio.create_task(self._run_step(step, host))
                        self._running[task] = step_id

                if not self._running:
                    if halt_policy is not None or not pending:
                        break
                    continue

                done, _ = await asyncio.wait(
                    self._running.keys(), return_when=asyncio.FIRST_COMPLETED
                )
                for task in sorted(done, key=lambda t: position[self._running[t]]):
                    step_id = self._running.pop(task)
                    result = self._collect(task, step_id)
                    await record(result)
                    if result.status is not StepStatus.FAILED:
                        continue
                    policy = (
                        FailurePolicy.ABORT
                        if result.cancelled
                        else plan.get(step_id).on_failure
                    )
                    if policy is FailurePolicy.CONTINUE_INDEPENDENT:
                        continue
                    if halted_by is None:
                        halted_by = step_id
                    if halt_policy is not FailurePolicy.ABORT:
                        halt_policy = policy
        except asyncio.CancelledError:
            for task in self._running:
                task.cancel()
            await asyncio.gather(*self._running, return_exceptions=True)
            for task, step_id in list(self._running.items()):
                await record(self._collect(task, step_id))
            self._running = {}
            for step_id in pending:
                await record(ExecutionResult.skipped(step_id, reason="run cancelled"))
            report.finalize(RunState.ABORTED, RunStatus.ABORTED, halted_by)
            self._state = RunState.ABORTED
            raise

        for step_id in pending:
            await record(
                ExecutionResult.skipped(
                    step_id,
                    caused_by=halted_by,
                    reason=f"halted by {halted_by}" if halted_by else "run cancelled",
                )
            )

        if halt_policy is FailurePolicy.ABORT:
            report.finalize(RunState.ABORTED, RunStatus.ABORTED, halted_by)
        elif halt_policy is FailurePolicy.SKIP_REMAINING:
            report.finalize(RunState.COMPLETED, RunStatus.PARTIAL_FAILURE, halted_by)
        elif report.failures():
            report.finalize(
                RunState.COMPLETED, RunStatus.PARTIAL_FAILURE, report.failures()[0].step_id
            )
        else:
            report.finalize(RunState.COMPLETED, RunStatus.SUCCESS)
