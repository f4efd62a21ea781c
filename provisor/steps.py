"""Declarative step kinds and the idempotence discipline of each.

Every kind turns into a ``Step`` whose precondition recognises work that is
already done, whose action calls exactly one family of adapters and whose
verification checks the host afterwards:

- directories that are cloned into are cleared before cloning, and a
  directory that already holds a checkout is left alone;
- lines appended to a file are de-duplicated against its content;
- downloads land atomically and an existing non-empty file counts as done;
- copies are done when every source file exists at the destination with
  the same size and every symlink is recreated with the same target;
- ownership is done when every entry already belongs to the user.
"""

from __future__ import annotations

import inspect
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Annotated, Any, Callable, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .adapters.base import AdapterResult
from .adapters.builder import parse_version, tool_version
from .adapters.files import has_lines, owned_by, tree_present
from .contracts import ConcurrencyClass, FailurePolicy, RetryPolicy, Step
from .host import HostContext

DPKG_RESOURCE = "/var/lib/dpkg"
SNAP_BIN = "/snap/bin"


def _norm(path: Union[str, Path]) -> str:
    return os.path.normpath(str(path))


class BaseStepSpec(BaseModel, ABC):
    """Fields shared by every step kind.

    Subclasses set a ``kind`` literal and implement ``to_step``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    description: str = ""
    depends_on: List[str] = Field(default_factory=list)
    on_failure: FailurePolicy = FailurePolicy.ABORT
    retry: Optional[RetryPolicy] = None
    timeout: Optional[float] = Field(default=None, gt=0)
    # the step also counts as done once all of these exist
    skip_if_exists: List[str] = Field(default_factory=list)

    @abstractmethod
    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        """Build the executable ``Step`` for ``host``."""

    def _step(
        self,
        host: HostContext,
        action: Callable[[HostContext], Any],
        precondition: Optional[Callable[[HostContext], Any]] = None,
        verify: Optional[Callable[[HostContext], Any]] = None,
        resources: Iterable[Union[str, Path]] = (),
        concurrency: ConcurrencyClass = ConcurrencyClass.LOCAL,
        network_retry: Optional[RetryPolicy] = None,
    ) -> Step:
        retry = self.retry or network_retry or RetryPolicy()
        if self.skip_if_exists:
            markers = [host.path(p) for p in self.skip_if_exists]
            own_check = precondition

            async def precondition(h: HostContext) -> bool:
                if all(m.exists() for m in markers):
                    return True
                if own_check is None:
                    return False
                result = own_check(h)
                if inspect.isawaitable(result):
                    result = await result
                return bool(result)

        return Step(
            id=self.id,
            description=self.description or self.id,
            depends_on=frozenset(self.depends_on),
            action=action,
            precondition=precondition,
            verify=verify,
            on_failure=self.on_failure,
            retry=retry,
            timeout=self.timeout,
            resources=frozenset(_norm(r) for r in resources),
            concurrency=concurrency,
        )


class PackagesSpec(BaseStepSpec):
    kind: Literal["packages"] = "packages"
    packages: List[str] = Field(min_length=1)

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        names = sorted(set(self.packages))

        async def installed(h: HostContext) -> bool:
            for name in names:
                if not await h.adapters.packages.is_installed(name):
                    return False
            return True

        async def install(h: HostContext) -> AdapterResult:
            return await h.adapters.packages.install(names)

        return self._step(
            host,
            install,
            precondition=installed,
            verify=installed,
            resources=(DPKG_RESOURCE,),
            concurrency=ConcurrencyClass.NETWORK,
            network_retry=network_retry,
        )


class SnapSpec(BaseStepSpec):
    """Install a snap, optionally only when a tool is older than ``min_version``."""

    kind: Literal["snap"] = "snap"
    name: str
    binary: Optional[str] = None
    min_version: Optional[str] = None

    @field_validator("min_version")
    @classmethod
    def _check_version(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and parse_version(value) is None:
            raise ValueError(f"Unrecognised version: {value}")
        return value

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        binary = self.binary or self.name
        minimum = parse_version(self.min_version) if self.min_version else None

        async def satisfied(h: HostContext) -> bool:
            if minimum is None:
                return await h.adapters.snaps.is_installed(self.name)
            current = await tool_version(binary, extra_paths=[SNAP_BIN])
            return current is not None and current >= minimum

        async def install(h: HostContext) -> AdapterResult:
            return await h.adapters.snaps.install([self.name])

        return self._step(
            host,
            install,
            precondition=satisfied,
            verify=satisfied,
            resources=(DPKG_RESOURCE,),
            concurrency=ConcurrencyClass.NETWORK,
            network_retry=network_retry,
        )


class CloneSpec(BaseStepSpec):
    kind: Literal["clone"] = "clone"
    url: str
    destination: str

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        destination = host.path(self.destination)

        def checked_out(h: HostContext) -> bool:
            return h.adapters.vcs.is_checkout(destination)

        async def clone(h: HostContext) -> AdapterResult:
            cleared = await h.adapters.files.remove([destination])
            if not cleared:
                return cleared
            return await h.adapters.vcs.clone(self.url, destination)

        return self._step(
            host,
            clone,
            precondition=checked_out,
            verify=checked_out,
            resources=(destination,),
            concurrency=ConcurrencyClass.NETWORK,
            network_retry=network_retry,
        )


class BuildSpec(BaseStepSpec):
    """Run build targets; ``creates`` names the artifacts that prove the build."""

    kind: Literal["build"] = "build"
    directory: str
    targets: List[str] = Field(default_factory=list)
    creates: List[str] = Field(default_factory=list)
    skip_if_missing: bool = False
    # looked up before PATH, e.g. /snap/bin for a snap-installed cmake
    search_paths: List[str] = Field(default_factory=list)

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        directory = host.path(self.directory)
        artifacts = [host.path(p) for p in self.creates]

        def built(h: HostContext) -> bool:
            if self.skip_if_missing and not directory.is_dir():
                return True
            return bool(artifacts) and all(p.exists() for p in artifacts)

        async def build(h: HostContext) -> AdapterResult:
            outputs = []
            for target in self.targets or [None]:
                result = await h.adapters.builder.run(
                    directory, target, search_paths=self.search_paths
                )
                if not result:
                    return result
                outputs.append(result.stdout)
            return AdapterResult.ok(stdout="".join(outputs))

        def artifacts_exist(h: HostContext) -> bool:
            return all(p.exists() for p in artifacts)

        return self._step(
            host,
            build,
            precondition=built,
            verify=artifacts_exist,
            resources=(directory,),
            concurrency=ConcurrencyClass.BUILD,
        )


class CertificateSpec(BaseStepSpec):
    kind: Literal["certificate"] = "certificate"
    subject: str
    key: str
    cert: str
    validity_days: int = Field(default=3650, gt=0)

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        key, cert = host.path(self.key), host.path(self.cert)

        def issued(h: HostContext) -> bool:
            return key.is_file() and cert.is_file()

        async def issue(h: HostContext) -> AdapterResult:
            return await h.adapters.certificates.issue_self_signed(
                self.subject, key, cert, self.validity_days
            )

        return self._step(host, issue, precondition=issued, verify=issued, resources=(key, cert))


class DownloadSpec(BaseStepSpec):
    kind: Literal["download"] = "download"
    url: str
    destination: str

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        destination = host.path(self.destination)
        if self.destination.endswith("/"):
            destination = destination / self.url.rstrip("/").rsplit("/", 1)[-1]

        def downloaded(h: HostContext) -> bool:
            return destination.is_file() and destination.stat().st_size > 0

        async def download(h: HostContext) -> AdapterResult:
            result = await h.adapters.fetcher.download(self.url, destination)
            if not result or not h.privileged:
                return result
            # fetched as root; the file belongs to the invoking user
            return await h.adapters.files.chown(destination, h.user, recursive=False)

        return self._step(
            host,
            download,
            precondition=downloaded,
            verify=downloaded,
            resources=(destination,),
            concurrency=ConcurrencyClass.NETWORK,
            network_retry=network_retry,
        )


class CopySpec(BaseStepSpec):
    """Copy the contents of ``source`` into ``destination``."""

    kind: Literal["copy"] = "copy"
    source: str
    destination: str

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        source, destination = host.path(self.source), host.path(self.destination)

        def copied(h: HostContext) -> bool:
            return tree_present(source, destination)

        async def copy(h: HostContext) -> AdapterResult:
            return await h.adapters.files.copy_tree(source, destination)

        return self._step(host, copy, precondition=copied, verify=copied, resources=(destination,))


class MoveSpec(BaseStepSpec):
    kind: Literal["move"] = "move"
    source: str
    destination: str

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        source, destination = host.path(self.source), host.path(self.destination)

        def moved(h: HostContext) -> bool:
            return destination.exists() and not source.exists()

        async def move(h: HostContext) -> AdapterResult:
            return await h.adapters.files.move(source, destination)

        return self._step(
            host, move, precondition=moved, verify=moved, resources=(source, destination)
        )


class DirectoriesSpec(BaseStepSpec):
    kind: Literal["directories"] = "directories"
    paths: List[str] = Field(min_length=1)

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        paths = [host.path(p) for p in self.paths]

        def present(h: HostContext) -> bool:
            return all(p.is_dir() for p in paths)

        async def make(h: HostContext) -> AdapterResult:
            return await h.adapters.files.make_dirs(paths)

        return self._step(host, make, precondition=present, verify=present, resources=paths)


class RemoveSpec(BaseStepSpec):
    kind: Literal["remove"] = "remove"
    paths: List[str] = Field(min_length=1)

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        paths = [host.path(p) for p in self.paths]

        def absent(h: HostContext) -> bool:
            return not any(p.exists() or p.is_symlink() for p in paths)

        async def remove(h: HostContext) -> AdapterResult:
            return await h.adapters.files.remove(paths)

        return self._step(host, remove, precondition=absent, verify=absent, resources=paths)


class HistorySpec(BaseStepSpec):
    """Append lines to a file (shell history, rc files), each at most once."""

    kind: Literal["history"] = "history"
    path: str
    lines: List[str] = Field(min_length=1)

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        path = host.path(self.path)
        lines = [host.expand(line) for line in self.lines]

        def present(h: HostContext) -> bool:
            return has_lines(path, lines)

        async def append(h: HostContext) -> AdapterResult:
            return await h.adapters.files.append_lines(path, lines)

        return self._step(host, append, precondition=present, verify=present, resources=(path,))


class ChmodSpec(BaseStepSpec):
    """Set permission bits; ``mode`` is an octal string such as ``"0755"``."""

    kind: Literal["chmod"] = "chmod"
    path: str
    mode: int

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> int:
        # YAML reads an unquoted 755 as decimal
        if not isinstance(value, str):
            raise ValueError(
                f"mode must be a quoted octal string such as '0755', got {value!r}"
            )
        mode = int(value, 8)
        if mode > 0o7777:
            raise ValueError(f"mode {value!r} is out of range")
        return mode

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        path = host.path(self.path)

        def has_mode(h: HostContext) -> bool:
            return path.exists() and (path.stat().st_mode & 0o7777) == self.mode

        async def chmod(h: HostContext) -> AdapterResult:
            return await h.adapters.files.chmod(path, self.mode)

        return self._step(host, chmod, precondition=has_mode, verify=has_mode, resources=(path,))


class ChownSpec(BaseStepSpec):
    """Hand ``paths`` (recursively) to the invoking user."""

    kind: Literal["chown"] = "chown"
    paths: List[str] = Field(min_length=1)

    def to_step(self, host: HostContext, network_retry: RetryPolicy) -> Step:
        paths = [host.path(p) for p in self.paths]

        def owned(h: HostContext) -> bool:
            return owned_by(paths, h.uid, h.gid)

        async def chown(h: HostContext) -> AdapterResult:
            for path in paths:
                if not path.exists():
                    continue
                result = await h.adapters.files.chown(path, h.user)
                if not result:
                    return result
            return AdapterResult.ok()

        return self._step(host, chown, precondition=owned, verify=owned, resources=paths)


StepSpec = Annotated[
    Union[
        PackagesSpec,
        SnapSpec,
        CloneSpec,
        BuildSpec,
        CertificateSpec,
        DownloadSpec,
        CopySpec,
        MoveSpec,
        DirectoriesSpec,
        RemoveSpec,
        HistorySpec,
        ChmodSpec,
        ChownSpec,
    ],
    Field(discriminator="kind"),
]
