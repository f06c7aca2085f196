"""Sandboxed file access for the agent: path resolution, reads, backups, atomic writes.

Every path coming from the model is repository-relative and goes through
resolve_in_repo() before it touches disk.  Mutations go through
snapshot_and_write(), which copies the previous bytes into a timestamped
backup directory that mirrors the repository layout:

    <state_dir>/backups/<unix-timestamp>/<repo-relative-path>

A missing backup file means the edit created the file, so undo deletes it.
"""

import os
import re
import shutil
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

from . import config
from .utils import dbg, warn

PathLike = Union[str, Path]


class PathEscape(ValueError):
    """Path resolves outside the repository root."""

    def __init__(self, path: PathLike, root: PathLike):
        super().__init__(f"path escapes repo root: {path} (root={root})")
        self.path = str(path)
        self.root = str(root)


def _norm_rel_path(p: str) -> str:
    p = (p or "").strip().replace("\\", "/")
    return re.sub(r"^\./+", "", p)


def is_write_blocked(path: str) -> bool:
    """Cheap guard run before resolution: absolute or hidden/relative-escape paths."""
    return path.startswith("/") or path.startswith(".")


def resolve_in_repo(repo_root: PathLike, rel_path: PathLike) -> Path:
    """Resolve rel_path under repo_root; raise PathEscape if it lands outside.

    Existing targets are fully canonicalized (symlinks followed).  Targets that
    do not exist yet resolve their existing prefix and join the rest, with
    `..` segments normalised, before the same containment check.
    A NUL byte anywhere in rel_path is rejected the same way.
    """
    root = Path(repo_root).resolve(strict=True)
    if "\x00" in str(rel_path):
        raise PathEscape(repr(str(rel_path)), root)
    candidate = root / Path(rel_path)
    try:
        if candidate.exists():
            target = candidate.resolve(strict=True)
        else:
            target = Path(os.path.normpath(candidate)).resolve()
    except ValueError as exc:
        raise PathEscape(rel_path, root) from exc
    if target != root and root not in target.parents:
        raise PathEscape(rel_path, root)
    return target


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut text to at most max_bytes of UTF-8 without splitting a character."""
    data = text.encode("utf-8")
    if len(data) <= max_bytes:
        return text
    return data[: max(0, max_bytes)].decode("utf-8", errors="ignore")


def read_repo_file(repo_root: PathLike, rel_path: str) -> Tuple[Path, str]:
    """Return (absolute path, text). Raises PathEscape, OSError, UnicodeDecodeError."""
    target = resolve_in_repo(repo_root, rel_path)
    return target, target.read_text(encoding="utf-8")


def create_empty_file(repo_root: PathLike, rel_path: str) -> bool:
    """Create an empty file under the repo. False when it already exists."""
    target = resolve_in_repo(repo_root, rel_path)
    if target.exists():
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(b"")
    dbg(f"created empty file {target}")
    return True


def read_optional(path: Path, max_bytes: int) -> Optional[str]:
    """Best-effort read used for ambient context; None when unreadable."""
    try:
        return truncate_utf8(path.read_text(encoding="utf-8"), max_bytes)
    except (OSError, UnicodeDecodeError):
        return None


def list_dir_files(repo_root: PathLike, rel_dir: str) -> List[str]:
    """Sorted file names directly inside a repo directory ([] when missing)."""
    try:
        base = resolve_in_repo(repo_root, rel_dir)
    except PathEscape:
        return []
    if not base.is_dir():
        return []
    return sorted(p.name for p in base.iterdir() if p.is_file())


def state_dir() -> Path:
    """Directory holding backups and the debug log (<cwd>/.smol by default)."""
    p = Path(config.STATE_DIR).expanduser() if config.STATE_DIR else Path.cwd() / ".smol"
    p.mkdir(parents=True, exist_ok=True)
    return p


def backups_dir(base: Optional[Path] = None) -> Path:
    return (base or state_dir()) / "backups"


def allocate_backup_root(base: Optional[Path] = None) -> Path:
    """Create backups/<unix-ts>; add a -N suffix when that second is taken."""
    root = backups_dir(base)
    root.mkdir(parents=True, exist_ok=True)
    stamp = str(int(time.time()))
    candidate = root / stamp
    n = 1
    while candidate.exists():
        candidate = root / f"{stamp}-{n}"
        n += 1
    candidate.mkdir()
    return candidate


def backup_path(backup_root: Path, abs_path: Path, repo_root: PathLike) -> Path:
    root = Path(repo_root).resolve()
    try:
        rel = abs_path.relative_to(root)
    except ValueError:
        raise PathEscape(abs_path, root)
    return backup_root / rel


def target_from_backup(backups: Path, repo_root: PathLike, backup_file: Path) -> Optional[Path]:
    """Map backups/<ts>/<rel> back to <repo_root>/<rel>."""
    try:
        rel = backup_file.relative_to(backups)
    except ValueError:
        return None
    parts = rel.parts
    if len(parts) < 2:
        return None
    return Path(repo_root).resolve().joinpath(*parts[1:])


def _write_atomic(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        dir=str(target.parent),
        prefix=target.name + ".tmp.",
        encoding="utf-8",
        newline="",
    ) as tmp:
        tmp.write(content)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        if target.exists():
            shutil.copymode(target, tmp_path)
        tmp_path.replace(target)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def snapshot_and_write(abs_path: Path, new_content: str, backup_file: Path) -> None:
    """Back up abs_path (if it exists) to backup_file, then write atomically.

    A failed backup copy is reported and the write still happens; undo for
    that file is then unreliable.
    """
    if abs_path.exists():
        try:
            backup_file.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(abs_path, backup_file)
        except OSError as exc:
            warn(f"failed to backup {abs_path}: {exc}")
    _write_atomic(abs_path, new_content)
    dbg(f"wrote {abs_path} ({len(new_content)} chars), backup={backup_file}")
