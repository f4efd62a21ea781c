from provisor.contracts import (
    ExecutionResult,
    Report,
    RunState,
    RunStatus,
    StepStatus,
)
from provisor.report import format_report, stderr_tail


def test_stderr_tail_keeps_last_lines():
    text = "\n".join(f"line {i}" for i in range(25)) + "\n\n"
    tail = stderr_tail(text)
    assert len(tail) == 10
    assert tail[0] == "line 15"
    assert tail[-1] == "line 24"
    assert stderr_tail(None) == []
    assert stderr_tail("a\nb", lines=0) == []


def test_format_report_names_culprit_and_stderr():
    report = Report(plan="adaptix")
    report.add(ExecutionResult(step_id="dependencies", status=StepStatus.SUCCEEDED, attempts=1))
    report.add(
        ExecutionResult(
            step_id="build-client",
            status=StepStatus.FAILED,
            attempts=1,
            error="[build-client] attempt 1: exit 2: missing Qt6",
            stderr="\n".join(f"cmake: {i}" for i in range(12)),
        )
    )
    report.add(ExecutionResult.skipped("cleanup", caused_by="build-client", reason="halted"))
    report.finalize(RunState.ABORTED, RunStatus.ABORTED, "build-client")

    lines = format_report(report)

    assert lines[0].startswith("Run of plan adaptix")
    assert any(line.startswith("[FAIL] build-client") for line in lines)
    assert any("[caused by build-client]" in line for line in lines)
    assert "Result: aborted" in lines
    assert "Caused by step: build-client" in lines
    assert lines[-1].strip() == "cmake: 11"
    assert "cmake: 1" not in [line.strip() for line in lines]
    assert report.exit_code == 1


def test_format_dry_run_shows_predictions():
    report = Report(plan="workstation", dry_run=True)
    report.add(
        ExecutionResult(
            step_id="packages", status=StepStatus.PENDING, output="would run", verified=False
        )
    )
    report.finalize(RunState.COMPLETED, RunStatus.SUCCESS)

    lines = format_report(report)

    assert lines[0].startswith("Dry run")
    assert "[TODO] packages: would run (verified now: no)" in lines
    assert report.exit_code == 0
