"""Human review of proposed edits, and undo of applied ones.

A batch from the model is dry-run into PreparedEdits; nothing is written
until the user applies an edit.  Each applied edit pushes a BackupRecord on
the session's undo stack:

    backup_file exists   -> undo copies it back over the target
    backup_file missing  -> the edit created the file; undo deletes it

All functions take the Session; they only touch its repo_root, state_dir,
review, undo_stack and message log.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Set

from . import files
from .diff import unified_diff
from .edits import Edit, EditBatch, EditError, apply_edit
from .messages import MessageKind
from .utils import dbg

if TYPE_CHECKING:
    from .session import Session


@dataclass
class PreparedEdit:
    path: str
    abs_path: Path
    diff: str
    rationale: Optional[str]
    new_content: str
    edit: Edit
    old_content: str


@dataclass
class ReviewState:
    edits: List[PreparedEdit]
    index: int
    backup_root: Path
    # backup files already written during this review
    used_backups: Set[Path] = field(default_factory=set)

    def current_edit(self) -> Optional[PreparedEdit]:
        if 0 <= self.index < len(self.edits):
            return self.edits[self.index]
        return None


@dataclass(frozen=True)
class BackupRecord:
    path: str
    backup_file: Path


def _read_current(abs_path: Path) -> str:
    """Current file text; "" for a file that does not exist yet."""
    try:
        return abs_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""


def _prepare(session: "Session", edit: Edit) -> Optional[PreparedEdit]:
    if files.is_write_blocked(edit.path):
        session.add_message(MessageKind.WARN, f"Skipping suspicious path: {edit.path}")
        return None
    try:
        abs_path = files.resolve_in_repo(session.repo_root, edit.path)
    except (files.PathEscape, OSError) as exc:
        session.add_message(MessageKind.WARN, f"Invalid path {edit.path}: {exc}")
        return None
    try:
        old = _read_current(abs_path)
    except (OSError, UnicodeDecodeError) as exc:
        session.add_message(MessageKind.ERROR, f"Failed to read {edit.path}: {exc}")
        return None
    try:
        new = apply_edit(old, edit)
    except EditError as exc:
        session.add_message(MessageKind.WARN, f"Skipping {edit.path}: {exc}")
        return None
    if new == old:
        session.add_message(MessageKind.INFO, f"No change for {edit.path}")
        return None
    return PreparedEdit(
        path=edit.path,
        abs_path=abs_path,
        diff=unified_diff(old, new, edit.path),
        rationale=edit.rationale,
        new_content=new,
        edit=edit,
        old_content=old,
    )


def begin_review(session: "Session", batch: EditBatch) -> bool:
    """Dry-run every edit; enter review when at least one would change a file."""
    prepared = [p for p in (_prepare(session, e) for e in batch.edits) if p is not None]
    if not prepared:
        session.add_message(MessageKind.INFO, "No applicable edits.")
        return False
    try:
        backup_root = files.allocate_backup_root(session.state_dir)
    except OSError as exc:
        session.add_message(MessageKind.ERROR, f"Failed to create backup directory: {exc}")
        return False
    session.review = ReviewState(edits=prepared, index=0, backup_root=backup_root)
    session.add_message(
        MessageKind.INFO,
        f"Proposed edits ready for review ({len(prepared)} items).",
    )
    dbg(f"review started: {len(prepared)} edit(s), backups in {backup_root}")
    return True


def _advance(session: "Session") -> None:
    review = session.review
    if review is None:
        return
    review.index += 1
    if review.index >= len(review.edits):
        session.review = None
        session.add_message(MessageKind.INFO, "Review complete.")


def _backup_file_for(session: "Session", review: ReviewState, abs_path: Path) -> Path:
    backup_file = files.backup_path(review.backup_root, abs_path, session.repo_root)
    if backup_file in review.used_backups:
        # Second edit to the same file: keep the first snapshot intact.
        review.backup_root = files.allocate_backup_root(session.state_dir)
        backup_file = files.backup_path(review.backup_root, abs_path, session.repo_root)
    review.used_backups.add(backup_file)
    return backup_file


def apply_current(session: "Session") -> None:
    review = session.review
    current = review.current_edit() if review is not None else None
    if current is None:
        return

    try:
        content = _read_current(current.abs_path)
    except (OSError, UnicodeDecodeError) as exc:
        session.add_message(MessageKind.ERROR, f"Failed to read {current.path}: {exc}")
        return
    new_content = current.new_content
    if content != current.old_content:
        # An earlier edit in this review (or someone else) changed the file.
        try:
            new_content = apply_edit(content, current.edit)
        except EditError as exc:
            skip_current(session, f"Skipped ({exc})")
            return
        if new_content == content:
            skip_current(session, "No change for")
            return

    try:
        backup_file = _backup_file_for(session, review, current.abs_path)
        files.snapshot_and_write(current.abs_path, new_content, backup_file)
    except (files.PathEscape, OSError) as exc:
        session.add_message(MessageKind.ERROR, f"Failed to write {current.path}: {exc}")
        return
    session.undo_stack.append(BackupRecord(path=current.path, backup_file=backup_file))
    session.add_message(MessageKind.INFO, f"Applied {current.path} (backup: {backup_file})")
    _advance(session)


def skip_current(session: "Session", reason: str = "Skipped") -> None:
    review = session.review
    current = review.current_edit() if review is not None else None
    if current is not None:
        session.add_message(MessageKind.INFO, f"{reason}: {current.path}")
    _advance(session)


def cancel_review(session: "Session") -> None:
    if session.review is None:
        return
    session.review = None
    session.add_message(MessageKind.INFO, "Exited review.")


def undo_last(session: "Session") -> None:
    if session.review is not None:
        session.add_message(MessageKind.WARN, "Finish or cancel the current review before undoing.")
        return
    if session.awaiting_response:
        session.add_message(MessageKind.WARN, "Still waiting for the last response...")
        return
    if not session.undo_stack:
        session.add_message(MessageKind.INFO, "Nothing to undo.")
        return

    record = session.undo_stack.pop()
    target = files.target_from_backup(
        files.backups_dir(session.state_dir), session.repo_root, record.backup_file
    )
    if target is None:
        session.add_message(MessageKind.WARN, f"Could not determine target for {record.backup_file}")
        return

    if record.backup_file.exists():
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(record.backup_file, target)
        except OSError as exc:
            session.add_message(MessageKind.ERROR, f"Undo failed: {exc}")
            return
        session.add_message(MessageKind.INFO, f"Reverted {record.path}")
        return

    try:
        target.unlink()
    except FileNotFoundError:
        session.add_message(MessageKind.INFO, f"Nothing to undo for {record.path}")
        return
    except OSError as exc:
        session.add_message(MessageKind.ERROR, f"Undo failed: {exc}")
        return
    session.add_message(MessageKind.INFO, f"Removed {record.path}")
