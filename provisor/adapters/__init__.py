"""Adapter factory and initialization."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..config import ProvisorConfig, load_config
from .base import (
    AdapterResult,
    Builder,
    CertificateAuthority,
    Fetcher,
    PackageManager,
    VersionControl,
)
from .builder import MakeBuilder
from .certs import SelfSignedAuthority
from .fetch import HttpFetcher
from .files import FilePlacer
from .packages import AptPackageManager, SnapPackageManager
from .vcs import GitClient


@dataclass(frozen=True)
class Adapters:
    """The external collaborators available to steps."""

    packages: PackageManager = field(default_factory=AptPackageManager)
    snaps: PackageManager = field(default_factory=SnapPackageManager)
    vcs: VersionControl = field(default_factory=GitClient)
    builder: Builder = field(default_factory=MakeBuilder)
    certificates: CertificateAuthority = field(default_factory=SelfSignedAuthority)
    fetcher: Fetcher = field(default_factory=HttpFetcher)
    files: FilePlacer = field(default_factory=FilePlacer)


def get_adapters(config: Optional[ProvisorConfig] = None) -> Adapters:
    """Factory function building the real host adapters from configuration."""

    config = config or load_config()
    return Adapters(
        packages=AptPackageManager(update=config.apt.update, sudo=config.apt.sudo),
        snaps=SnapPackageManager(sudo=config.apt.sudo),
    )


__all__ = [
    "AdapterResult",
    "Adapters",
    "Builder",
    "CertificateAuthority",
    "Fetcher",
    "FilePlacer",
    "PackageManager",
    "VersionControl",
    "get_adapters",
]
