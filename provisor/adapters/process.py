"""Subprocess execution shared by the command-line adapters."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from typing import Mapping, Optional, Sequence

from ..constants import PROCESS_KILL_GRACE
from .base import AdapterResult, PathLike

logger = logging.getLogger(__name__)


async def _terminate_group(process: asyncio.subprocess.Process) -> None:
    """Kill the process group started for ``process``."""
    if process.returncode is not None:
        return
    try:
        os.killpg(process.pid, signal.SIGTERM)
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=PROCESS_KILL_GRACE)
    except asyncio.TimeoutError:
        logger.warning(f"Process group {process.pid} ignored SIGTERM, killing")
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        await process.wait()


async def run_command(
    argv: Sequence[str],
    *,
    cwd: Optional[PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> AdapterResult:
    """Run ``argv`` and wrap its outcome in an ``AdapterResult``.

    The child runs in its own session so that cancellation or a timeout
    terminates the whole process group, including grandchildren spawned by
    build tools. Cancellation is re-raised after cleanup.
    """
    command = list(argv)
    full_env = {**os.environ, **env} if env else None
    logger.debug(f"Running {' '.join(command)} (cwd={cwd})")
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        return AdapterResult.failed(str(exc), exit_info=f"{command[0]}: not executable")

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _terminate_group(process)
        return AdapterResult.failed(
            f"Command timed out after {timeout} seconds", exit_info="timeout"
        )
    except asyncio.CancelledError:
        await _terminate_group(process)
        raise

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if process.returncode != 0:
        return AdapterResult.failed(
            err, exit_info=f"exit {process.returncode}", stdout=out
        )
    return AdapterResult.ok(stdout=out)
