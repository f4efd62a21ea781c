"""Result envelope and interfaces for external collaborators."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Protocol, Sequence, Union

from pydantic import BaseModel

PathLike = Union[str, Path]


class AdapterResult(BaseModel):
    """Uniform outcome of a call into an external tool.

    The orchestrator only ever looks at this envelope, never at
    tool-specific output.
    """

    success: bool
    exit_info: Optional[str] = None
    stderr: str = ""
    stdout: str = ""

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, stdout: str = "", exit_info: str = "exit 0") -> "AdapterResult":
        return cls(success=True, exit_info=exit_info, stdout=stdout)

    @classmethod
    def failed(
        cls, stderr: str, exit_info: Optional[str] = None, stdout: str = ""
    ) -> "AdapterResult":
        return cls(success=False, exit_info=exit_info, stderr=stderr, stdout=stdout)


class PackageManager(Protocol):
    """Installs operating system packages."""

    async def install(self, names: Iterable[str]) -> AdapterResult:
        """Install every package in ``names``."""

    async def is_installed(self, name: str) -> bool:
        """Return ``True`` when ``name`` is already installed."""


class VersionControl(Protocol):
    """Fetches source repositories."""

    async def clone(self, url: str, destination: PathLike) -> AdapterResult:
        """Clone ``url`` into ``destination``."""

    def is_checkout(self, path: PathLike) -> bool:
        """Return ``True`` when ``path`` holds a working copy."""


class Builder(Protocol):
    """Runs third-party build systems."""

    async def run(
        self,
        target_dir: PathLike,
        target: Optional[str] = None,
        search_paths: Sequence[str] = (),
    ) -> AdapterResult:
        """Build ``target`` (or the default target) inside ``target_dir``.

        ``search_paths`` are looked up before ``PATH`` for the tools the build runs.
        """


class CertificateAuthority(Protocol):
    """Issues TLS certificates."""

    async def issue_self_signed(
        self,
        subject: str,
        out_key_path: PathLike,
        out_cert_path: PathLike,
        validity_days: int,
    ) -> AdapterResult:
        """Write a private key and a self-signed certificate for ``subject``."""


class Fetcher(Protocol):
    """Downloads single files."""

    async def download(self, url: str, destination: PathLike) -> AdapterResult:
        """Download ``url`` to the file ``destination``."""
