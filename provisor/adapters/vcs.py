"""Version control adapter backed by the git command line."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .base import AdapterResult, PathLike
from .process import run_command

logger = logging.getLogger(__name__)


class GitClient:
    """Clone repositories with ``git``."""

    def __init__(self, depth: Optional[int] = None) -> None:
        self._depth = depth

    async def clone(self, url: str, destination: PathLike) -> AdapterResult:
        argv = ["git", "clone"]
        if self._depth:
            argv += ["--depth", str(self._depth)]
        argv += [url, str(destination)]
        logger.info(f"Cloning {url} into {destination}")
        return await run_command(argv, env={"GIT_TERMINAL_PROMPT": "0"})

    def is_checkout(self, path: PathLike) -> bool:
        return (Path(path) / ".git").exists()
