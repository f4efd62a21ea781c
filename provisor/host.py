"""Explicit host state passed into every step."""

from __future__ import annotations

import logging
import os
import pwd
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .adapters import Adapters, get_adapters
from .config import ProvisorConfig
from .errors import InvalidPlanError, ProvisorError

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"(?<!\$)\{([A-Za-z_][A-Za-z0-9_]*)\}")


def resolve_invoking_user(explicit: Optional[str] = None) -> str:
    """Name of the user the provisioned files should belong to.

    When run through ``sudo`` this is the calling user rather than root.
    """
    if explicit:
        return explicit
    sudo_user = os.getenv("SUDO_USER")
    if sudo_user:
        return sudo_user
    try:
        return os.getlogin()
    except OSError:
        pass
    return os.getenv("USER") or pwd.getpwuid(os.geteuid()).pw_name


class HostContext(BaseModel):
    """Identity, layout and collaborators of the host being provisioned.

    Built once at startup and shared read-only by every step of a run.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    user: str
    uid: int
    gid: int
    home: Path
    install_root: Path
    work_dir: Path
    privileged: bool = False
    adapters: Any = Field(default_factory=Adapters)

    @classmethod
    def discover(
        cls,
        config: Optional[ProvisorConfig] = None,
        adapters: Optional[Adapters] = None,
    ) -> "HostContext":
        config = config or ProvisorConfig()
        user = resolve_invoking_user(config.user)
        try:
            entry = pwd.getpwnam(user)
        except KeyError as exc:
            raise ProvisorError(f"Unknown user {user!r}") from exc
        if not entry.pw_dir:
            raise ProvisorError(f"Unable to determine home directory for user {user!r}")

        home = Path(entry.pw_dir)
        install_root = Path(config.install_root).expanduser() if config.install_root else home
        host = cls(
            user=user,
            uid=entry.pw_uid,
            gid=entry.pw_gid,
            home=home,
            install_root=install_root,
            work_dir=Path(config.work_dir),
            privileged=os.geteuid() == 0,
            adapters=adapters or get_adapters(config),
        )
        logger.debug(f"Host context: user={user} home={home} install_root={install_root}")
        return host

    def expand(self, template: str) -> str:
        """Substitute ``{home}``, ``{user}``, ``{install_root}`` and ``{work_dir}``.

        Other braces (shell brace expansion, ``${VAR}``) are left untouched.
        An unknown ``{name}`` field raises ``InvalidPlanError``.
        """
        values = {
            "home": str(self.home),
            "user": self.user,
            "install_root": str(self.install_root),
            "work_dir": str(self.work_dir),
        }

        def substitute(match: re.Match) -> str:
            name = match.group(1)
            if name not in values:
                raise InvalidPlanError(
                    f"Unknown placeholder {{{name}}} in {template!r}; "
                    f"expected one of {', '.join(sorted(values))}"
                )
            return values[name]

        return _PLACEHOLDER_RE.sub(substitute, template)

    def path(self, template: str) -> Path:
        return Path(self.expand(template))
