"""Shared fixtures: in-process fakes for every host adapter."""

from __future__ import annotations

import getpass
import os
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from provisor.adapters import Adapters, FilePlacer
from provisor.adapters.base import AdapterResult
from provisor.host import HostContext
from provisor.runner import StepRunner


class FakePackageManager:
    def __init__(self, installed=(), fail_times: int = 0) -> None:
        self.installed = set(installed)
        self.fail_times = fail_times
        self.calls: List[List[str]] = []

    async def install(self, names) -> AdapterResult:
        names = list(names)
        self.calls.append(names)
        if self.fail_times:
            self.fail_times -= 1
            return AdapterResult.failed("E: Could not get lock", exit_info="exit 100")
        self.installed.update(names)
        return AdapterResult.ok()

    async def is_installed(self, name: str) -> bool:
        return name in self.installed


class FakeVersionControl:
    def __init__(self) -> None:
        self.clones: List[str] = []

    async def clone(self, url: str, destination) -> AdapterResult:
        self.clones.append(url)
        (Path(destination) / ".git").mkdir(parents=True)
        return AdapterResult.ok()

    def is_checkout(self, path) -> bool:
        return (Path(path) / ".git").is_dir()


class FakeBuilder:
    """Creates ``artifacts[target]`` (relative to the build dir) when run."""

    def __init__(self, artifacts: Optional[Dict[Optional[str], str]] = None) -> None:
        self.artifacts = artifacts or {}
        self.runs: List[tuple] = []
        self.search_paths: List[tuple] = []

    async def run(self, target_dir, target=None, search_paths=()) -> AdapterResult:
        self.runs.append((str(target_dir), target))
        self.search_paths.append(tuple(search_paths))
        artifact = self.artifacts.get(target)
        if artifact:
            path = Path(target_dir) / artifact
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("binary")
        return AdapterResult.ok(stdout=f"built {target}\n")


class FakeCertificateAuthority:
    def __init__(self) -> None:
        self.issued: List[str] = []

    async def issue_self_signed(self, subject, out_key_path, out_cert_path, validity_days=3650):
        self.issued.append(subject)
        Path(out_key_path).write_text("key")
        Path(out_cert_path).write_text("cert")
        return AdapterResult.ok()


class FakeFetcher:
    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.calls: List[str] = []

    async def download(self, url: str, destination) -> AdapterResult:
        self.calls.append(url)
        if self.fail_times:
            self.fail_times -= 1
            return AdapterResult.failed("connection reset", exit_info="HTTP 503")
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        Path(destination).write_text(f"content of {url}")
        return AdapterResult.ok()


@pytest.fixture
def adapters() -> Adapters:
    return Adapters(
        packages=FakePackageManager(),
        snaps=FakePackageManager(),
        vcs=FakeVersionControl(),
        builder=FakeBuilder(),
        certificates=FakeCertificateAuthority(),
        fetcher=FakeFetcher(),
        files=FilePlacer(),
    )


@pytest.fixture
def host(tmp_path, adapters) -> HostContext:
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    return HostContext(
        user=getpass.getuser(),
        uid=os.getuid(),
        gid=os.getgid(),
        home=home,
        install_root=home,
        work_dir=work,
        adapters=adapters,
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def runner(sleeps) -> StepRunner:
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    return StepRunner(sleep=record_sleep)
