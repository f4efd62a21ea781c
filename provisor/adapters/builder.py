"""Build tool adapter and tool version probing."""

from __future__ import annotations

import logging
import os
import re
import shutil
from typing import Iterable, Optional, Sequence, Tuple

from .base import AdapterResult, PathLike
from .process import run_command

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")

Version = Tuple[int, int, int]


class MakeBuilder:
    """Run ``make`` targets inside a source directory."""

    def __init__(self, jobs: Optional[int] = None) -> None:
        self._jobs = jobs

    async def run(
        self,
        target_dir: PathLike,
        target: Optional[str] = None,
        search_paths: Sequence[str] = (),
    ) -> AdapterResult:
        """Run ``make [target]``; ``search_paths`` go in front of ``PATH``."""
        argv = ["make"]
        if self._jobs:
            argv.append(f"-j{self._jobs}")
        if target:
            argv.append(target)
        env = None
        if search_paths:
            env = {"PATH": os.pathsep.join([*search_paths, os.environ.get("PATH", "")])}
        logger.info(f"Building {target or 'default target'} in {target_dir}")
        return await run_command(argv, cwd=target_dir, env=env)


def parse_version(text: str) -> Optional[Version]:
    """Extract the first ``MAJOR.MINOR[.PATCH]`` triple found in ``text``."""
    match = _VERSION_RE.search(text)
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


async def tool_version(
    binary: str, extra_paths: Iterable[str] = ()
) -> Optional[Version]:
    """Return the version reported by ``<binary> --version``.

    ``extra_paths`` are searched before ``PATH``; returns ``None`` when the
    tool is missing or prints no recognisable version.
    """
    search = os.pathsep.join([*extra_paths, os.environ.get("PATH", "")])
    executable = shutil.which(binary, path=search)
    if executable is None:
        return None
    result = await run_command([executable, "--version"])
    if not result:
        return None
    first_line = result.stdout.splitlines()[0] if result.stdout else ""
    return parse_version(first_line)
