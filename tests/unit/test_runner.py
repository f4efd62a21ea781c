import asyncio

import pytest

import provisor.utils.retry as retry_utils
from provisor import RetryPolicy, Step, StepRunner, StepStatus
from provisor.adapters.base import AdapterResult


class Counter:
    def __init__(self, fail_times: int = 0) -> None:
        self.calls = 0
        self.fail_times = fail_times

    async def __call__(self, host) -> AdapterResult:
        self.calls += 1
        if self.calls <= self.fail_times:
            return AdapterResult.failed(
                "\n".join(f"line {i}" for i in range(15)), exit_info="exit 1"
            )
        return AdapterResult.ok(stdout="done")


@pytest.mark.asyncio
async def test_satisfied_precondition_skips_without_action(runner, host):
    action = Counter()
    step = Step(id="s", action=action, precondition=lambda h: True)

    result = await runner.run(step, host)

    assert result.status is StepStatus.SKIPPED
    assert result.caused_by is None
    assert not result.blocks_dependents
    assert action.calls == 0


@pytest.mark.asyncio
async def test_action_success_with_verification(runner, host):
    action = Counter()
    step = Step(id="s", action=action, precondition=lambda h: False, verify=lambda h: True)

    result = await runner.run(step, host)

    assert result.status is StepStatus.SUCCEEDED
    assert result.attempts == 1
    assert result.output == "done"


@pytest.mark.asyncio
async def test_retry_until_success_with_linear_backoff(runner, host, sleeps):
    action = Counter(fail_times=2)
    step = Step(
        id="fetch",
        action=action,
        retry=RetryPolicy(max_attempts=3, backoff="linear", delay=2.0),
    )

    result = await runner.run(step, host)

    assert result.status is StepStatus.SUCCEEDED
    assert result.attempts == 3
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_retry_exhausted_reports_last_error(runner, host, sleeps):
    action = Counter(fail_times=10)
    step = Step(id="fetch", action=action, retry=RetryPolicy.network())

    result = await runner.run(step, host)

    assert result.status is StepStatus.FAILED
    assert result.attempts == 3
    assert action.calls == 3
    assert result.error_type == "ActionExecutionError"
    assert "attempt 3" in result.error
    assert "line 14" in result.stderr
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_exception_in_action_is_a_failed_attempt(runner, host):
    def explode(h):
        raise RuntimeError("boom")

    result = await runner.run(Step(id="x", action=explode), host)

    assert result.status is StepStatus.FAILED
    assert result.attempts == 1
    assert "RuntimeError: boom" in result.error


@pytest.mark.asyncio
async def test_failed_verification_is_not_retried(runner, host):
    action = Counter()
    step = Step(
        id="v",
        action=action,
        verify=lambda h: False,
        retry=RetryPolicy(max_attempts=3),
    )

    result = await runner.run(step, host)

    assert result.status is StepStatus.FAILED
    assert result.error_type == "VerificationError"
    assert action.calls == 1


@pytest.mark.asyncio
async def test_precondition_error_fails_without_action(runner, host):
    action = Counter()

    def broken(h):
        raise PermissionError("denied")

    result = await runner.run(Step(id="p", action=action, precondition=broken), host)

    assert result.status is StepStatus.FAILED
    assert result.error_type == "PreconditionCheckError"
    assert action.calls == 0


@pytest.mark.asyncio
async def test_timeout_fails_the_step(host):
    async def slow(h):
        await asyncio.sleep(5)

    result = await StepRunner().run(Step(id="slow", action=slow, timeout=0.05), host)

    assert result.status is StepStatus.FAILED
    assert result.error_type == "StepTimeoutError"
    assert not result.cancelled


@pytest.mark.asyncio
async def test_default_runner_waits_through_retry_helper(host, monkeypatch):
    delays = []

    async def fake_schedule_retry(delay):
        delays.append(delay)

    monkeypatch.setattr(retry_utils, "schedule_retry", fake_schedule_retry)
    step = Step(
        id="r",
        action=Counter(fail_times=1),
        retry=RetryPolicy(max_attempts=2, backoff="exponential", delay=3.0),
    )

    result = await StepRunner().run(step, host)

    assert result.status is StepStatus.SUCCEEDED
    assert delays == [3.0]


@pytest.mark.asyncio
async def test_cancellation_reports_cancelled_result(runner, host):
    started = asyncio.Event()

    async def hang(h):
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(runner.run(Step(id="hang", action=hang), host))
    await started.wait()
    task.cancel()
    result = await task

    assert result.status is StepStatus.FAILED
    assert result.cancelled
    assert result.error_type == "StepCancelledError"


@pytest.mark.asyncio
async def test_predict_never_runs_the_action(runner, host):
    action = Counter()
    pending = Step(id="todo", action=action, precondition=lambda h: False, verify=lambda h: False)
    done = Step(id="done", action=action, precondition=lambda h: True, verify=lambda h: True)

    first = await runner.predict(pending, host)
    second = await runner.predict(done, host)

    assert first.status is StepStatus.PENDING
    assert first.verified is False
    assert second.status is StepStatus.SKIPPED
    assert second.verified is True
    assert action.calls == 0
