"""Human-readable rendering of run reports."""

from __future__ import annotations

from typing import List, Optional

from .constants import STDERR_TAIL_LINES
from .contracts import Report, RunStatus, StepStatus

_MARKERS = {
    StepStatus.SUCCEEDED: "[ OK ]",
    StepStatus.SKIPPED: "[SKIP]",
    StepStatus.FAILED: "[FAIL]",
    StepStatus.PENDING: "[TODO]",
    StepStatus.RUNNING: "[ .. ]",
}


def stderr_tail(text: Optional[str], lines: int = STDERR_TAIL_LINES) -> List[str]:
    """Return the last ``lines`` non-blank lines of ``text``."""
    if not text:
        return []
    content = [line for line in text.splitlines() if line.strip()]
    return content[-lines:] if lines > 0 else []


def format_report(report: Report, tail_lines: int = STDERR_TAIL_LINES) -> List[str]:
    """Render ``report`` as printable lines, one per step plus a summary."""
    title = "Dry run" if report.dry_run else "Run"
    lines = [f"{title} of plan {report.plan} ({report.run_id})"]

    for result in report.results:
        line = f"{_MARKERS[result.status]} {result.step_id}"
        if report.dry_run:
            line += f": {result.output or result.status.value}"
            if result.verified is not None:
                line += f" (verified now: {'yes' if result.verified else 'no'})"
        elif result.status is StepStatus.SKIPPED:
            line += f": {result.output or 'skipped'}"
        else:
            line += f" ({result.attempts} attempt(s), {result.duration:.1f}s)"
        if result.caused_by:
            line += f" [caused by {result.caused_by}]"
        if result.error:
            line += f" - {result.error}"
        lines.append(line)

    status = report.status.value if report.status else report.state.value
    lines.append(f"Result: {status}")
    if report.status in (RunStatus.ABORTED, RunStatus.PARTIAL_FAILURE) and report.caused_by:
        lines.append(f"Caused by step: {report.caused_by}")
        culprit = report.result_for(report.caused_by)
        tail = stderr_tail(culprit.stderr if culprit else None, tail_lines)
        if tail:
            lines.append(f"Last {len(tail)} line(s) of stderr:")
            lines.extend(f"    {line}" for line in tail)
    return lines
