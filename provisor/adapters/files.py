"""Filesystem placement adapter and the host-state queries that go with it."""

from __future__ import annotations

import asyncio
import grp
import logging
import os
import pwd
import shutil
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .base import AdapterResult, PathLike

logger = logging.getLogger(__name__)


def _relative_entries(root: Path) -> List[Path]:
    """Files and symlinks under ``root``; symlinked directories are not descended."""
    entries = []
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath, name)
            if name in filenames or path.is_symlink():
                entries.append(path.relative_to(root))
    return entries


def tree_present(src: PathLike, dst: PathLike) -> bool:
    """``True`` when every entry under ``src`` is mirrored under ``dst``.

    Regular files must match in size; symlinks, dangling or not, must exist
    as links with the same target.
    """
    src_root, dst_root = Path(src), Path(dst)
    if not src_root.is_dir() or not dst_root.is_dir():
        return False
    for rel in _relative_entries(src_root):
        source, target = src_root / rel, dst_root / rel
        if source.is_symlink():
            if not target.is_symlink() or os.readlink(target) != os.readlink(source):
                return False
        elif not target.is_file() or target.stat().st_size != source.stat().st_size:
            return False
    return True


def _walk(path: Path) -> Iterable[Path]:
    yield path
    if path.is_dir() and not path.is_symlink():
        for dirpath, dirnames, filenames in os.walk(path):
            for name in dirnames + filenames:
                yield Path(dirpath, name)


def owned_by(paths: Iterable[PathLike], uid: int, gid: int) -> bool:
    """``True`` when every existing path (recursively) belongs to ``uid:gid``."""
    for root in paths:
        root = Path(root)
        if not root.exists():
            continue
        for entry in _walk(root):
            st = entry.lstat()
            if st.st_uid != uid or st.st_gid != gid:
                return False
    return True


def has_lines(path: PathLike, lines: Iterable[str]) -> bool:
    """``True`` when ``path`` already contains every line in ``lines``."""
    target = Path(path)
    if not target.is_file():
        return False
    existing = set(target.read_text(encoding="utf-8", errors="replace").splitlines())
    return all(line in existing for line in lines)


class FilePlacer:
    """Place, move and re-own files on the local host.

    Blocking filesystem work runs in a worker thread. Failures are reported
    through ``AdapterResult`` rather than raised.
    """

    async def _call(self, description: str, func: Callable[[], Optional[str]]) -> AdapterResult:
        logger.debug(description)
        try:
            detail = await asyncio.to_thread(func)
        except (OSError, shutil.Error, KeyError) as exc:
            return AdapterResult.failed(str(exc), exit_info=description)
        return AdapterResult.ok(stdout=detail or "")

    async def copy_tree(self, src: PathLike, dst: PathLike) -> AdapterResult:
        def _copy() -> str:
            if not Path(src).is_dir():
                raise FileNotFoundError(f"Source directory {src} does not exist")
            shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
            return str(dst)

        return await self._call(f"copy {src} -> {dst}", _copy)

    async def move(self, src: PathLike, dst: PathLike) -> AdapterResult:
        def _move() -> str:
            return str(shutil.move(str(src), str(dst)))

        return await self._call(f"move {src} -> {dst}", _move)

    async def chown(
        self, path: PathLike, user: str, group: Optional[str] = None, recursive: bool = True
    ) -> AdapterResult:
        def _chown() -> str:
            uid = pwd.getpwnam(user).pw_uid
            gid = grp.getgrnam(group).gr_gid if group else pwd.getpwnam(user).pw_gid
            root = Path(path)
            entries = _walk(root) if recursive else [root]
            count = 0
            for entry in entries:
                os.lchown(entry, uid, gid)
                count += 1
            return f"{count} entries"

        return await self._call(f"chown {user} {path}", _chown)

    async def chmod(self, path: PathLike, mode: int) -> AdapterResult:
        def _chmod() -> None:
            os.chmod(path, mode)

        return await self._call(f"chmod {oct(mode)} {path}", _chmod)

    async def make_dirs(self, paths: Iterable[PathLike]) -> AdapterResult:
        targets = [Path(p) for p in paths]

        def _mkdir() -> None:
            for target in targets:
                target.mkdir(parents=True, exist_ok=True)

        return await self._call(f"mkdir {' '.join(map(str, targets))}", _mkdir)

    async def remove(self, paths: Iterable[PathLike]) -> AdapterResult:
        targets = [Path(p) for p in paths]

        def _remove() -> None:
            for target in targets:
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                elif target.exists() or target.is_symlink():
                    target.unlink()

        return await self._call(f"remove {' '.join(map(str, targets))}", _remove)

    async def append_lines(self, path: PathLike, lines: Iterable[str]) -> AdapterResult:
        """Append the lines of ``lines`` that ``path`` does not contain yet."""
        wanted = list(lines)

        def _append() -> str:
            target = Path(path)
            existing = set()
            if target.is_file():
                existing = set(target.read_text(encoding="utf-8", errors="replace").splitlines())
            missing = [line for line in dict.fromkeys(wanted) if line not in existing]
            if not missing:
                return "0 lines appended"
            target.parent.mkdir(parents=True, exist_ok=True)
            needs_newline = target.is_file() and target.stat().st_size > 0 and not target.read_bytes().endswith(b"\n")
            with target.open("a", encoding="utf-8") as handle:
                if needs_newline:
                    handle.write("\n")
                handle.write("\n".join(missing) + "\n")
            return f"{len(missing)} lines appended"

        return await self._call(f"append to {path}", _append)
