"""Package manager adapters (apt and snap)."""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Iterable

from .base import AdapterResult
from .process import run_command

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class AptPackageManager:
    """Install Debian packages with ``apt-get``.

    The package index is refreshed once per adapter instance, before the
    first install.
    """

    def __init__(self, update: bool = True, sudo: bool = False) -> None:
        self._update = update
        self._prefix = ["sudo"] if sudo else []
        self._updated = False
        self._lock = asyncio.Lock()

    async def _refresh_index(self) -> AdapterResult:
        async with self._lock:
            if self._updated or not self._update:
                return AdapterResult.ok()
            result = await run_command(
                [*self._prefix, "apt-get", "update"], env=_APT_ENV
            )
            if result:
                self._updated = True
            return result

    async def install(self, names: Iterable[str]) -> AdapterResult:
        packages = sorted(set(names))
        if not packages:
            return AdapterResult.ok()
        if shutil.which("apt-get") is None:
            return AdapterResult.failed(
                "apt-get not found; a Debian/Ubuntu host is required",
                exit_info="missing apt-get",
            )
        refreshed = await self._refresh_index()
        if not refreshed:
            return refreshed
        logger.info(f"Installing packages: {' '.join(packages)}")
        return await run_command(
            [*self._prefix, "apt-get", "install", "-y", *packages], env=_APT_ENV
        )

    async def is_installed(self, name: str) -> bool:
        result = await run_command(
            ["dpkg-query", "-W", "-f=${Status}", name]
        )
        return bool(result) and "install ok installed" in result.stdout


class SnapPackageManager:
    """Install snaps, optionally with classic confinement."""

    def __init__(self, classic: bool = True, sudo: bool = False) -> None:
        self._classic = classic
        self._prefix = ["sudo"] if sudo else []

    async def install(self, names: Iterable[str]) -> AdapterResult:
        packages = sorted(set(names))
        if not packages:
            return AdapterResult.ok()
        if shutil.which("snap") is None:
            return AdapterResult.failed("snap not found", exit_info="missing snap")
        argv = [*self._prefix, "snap", "install", *packages]
        if self._classic:
            argv.append("--classic")
        logger.info(f"Installing snaps: {' '.join(packages)}")
        return await run_command(argv)

    async def is_installed(self, name: str) -> bool:
        result = await run_command(["snap", "list", name])
        return bool(result)
