"""Agent turn: plan, gather context (reads/creates), then ask for edits.

run() never writes file content itself; the only filesystem mutation it does
is creating empty files named by `create` plan steps.  Edits come back as a
ModelResponse and go through review before touching disk.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Set, Union

from . import config
from .config import AppConfig
from .files import (
    PathEscape,
    create_empty_file,
    list_dir_files,
    read_optional,
    read_repo_file,
    truncate_utf8,
)
from .model import CompleteFn, ModelResponse, TransportError, complete as default_complete
from .model import generate_plan, propose_edits
from .planner import PlanStep, plan_or_fallback
from .utils import dbg


@dataclass(frozen=True)
class ReadSuccess:
    bytes: int


@dataclass(frozen=True)
class ReadFailed:
    error: str


@dataclass(frozen=True)
class ReadSkipped:
    pass


ReadOutcome = Union[ReadSuccess, ReadFailed, ReadSkipped]


@dataclass(frozen=True)
class ReadLog:
    path: str
    outcome: ReadOutcome


@dataclass(frozen=True)
class Created:
    pass


@dataclass(frozen=True)
class AlreadyExists:
    pass


@dataclass(frozen=True)
class CreateDuplicate:
    pass


@dataclass(frozen=True)
class CreateFailed:
    error: str


CreateOutcome = Union[Created, AlreadyExists, CreateDuplicate, CreateFailed]


@dataclass(frozen=True)
class CreateLog:
    path: str
    outcome: CreateOutcome


@dataclass
class AgentOutcome:
    plan: List[PlanStep]
    reads: List[ReadLog] = field(default_factory=list)
    creates: List[CreateLog] = field(default_factory=list)
    response: ModelResponse = field(default_factory=ModelResponse)

    @property
    def is_informational(self) -> bool:
        return any(step.is_answer for step in self.plan)


def _create_step(repo_root: Path, path: str, seen: Set[str]) -> CreateLog:
    if path in seen:
        return CreateLog(path, CreateDuplicate())
    seen.add(path)
    try:
        created = create_empty_file(repo_root, path)
    except (PathEscape, OSError) as exc:
        return CreateLog(path, CreateFailed(str(exc)))
    return CreateLog(path, Created() if created else AlreadyExists())


def run(
    cfg: AppConfig,
    repo_root: Path,
    user_prompt: str,
    base_context: str,
    complete: CompleteFn = default_complete,
) -> AgentOutcome:
    """One agent turn. TransportError from the edit request propagates."""
    try:
        plan_resp = generate_plan(cfg, user_prompt, complete=complete)
        plan = plan_or_fallback(plan_resp.payload(), user_prompt)
    except TransportError as exc:
        dbg(f"plan generation failed: {exc}")
        plan = plan_or_fallback(None, user_prompt)
    dbg(f"plan: {len(plan)} step(s)")

    reads: List[ReadLog] = []
    creates: List[CreateLog] = []
    seen_reads: Set[str] = set()
    seen_creates: Set[str] = set()
    context = base_context

    for step in plan:
        create_path = (step.create or "").strip()
        if create_path:
            creates.append(_create_step(repo_root, create_path, seen_creates))

        read_path = (step.read or "").strip()
        if not read_path:
            continue
        if read_path in seen_reads:
            reads.append(ReadLog(read_path, ReadSkipped()))
            continue
        seen_reads.add(read_path)
        try:
            abs_path, text = read_repo_file(repo_root, read_path)
        except (PathEscape, OSError, UnicodeDecodeError) as exc:
            dbg(f"read failed {read_path}: {exc}")
            reads.append(ReadLog(read_path, ReadFailed(str(exc))))
            continue
        context += f"\n\n# File: {read_path}\n{truncate_utf8(text, config.MAX_CONTEXT_BYTES_PER_FILE)}"
        try:
            size = abs_path.stat().st_size
        except OSError:
            size = len(text.encode("utf-8"))
        reads.append(ReadLog(read_path, ReadSuccess(size)))

    response = propose_edits(cfg, user_prompt, context, complete=complete)
    return AgentOutcome(plan=plan, reads=reads, creates=creates, response=response)


# --- context ------------------------------------------------------------------


def build_context(repo_root: Path, memory: Sequence[str] = ()) -> str:
    """Ambient context sent with every turn: README, project files, a source sample, memory."""
    root = Path(repo_root)
    parts: List[str] = []
    readme = read_optional(root / "README.md", config.README_MAX_BYTES)
    if readme is not None:
        parts.append("README.md:\n" + readme)

    for name in config.COMMON_CONTEXT_FILES:
        content = read_optional(root / name, config.COMMON_FILE_MAX_BYTES)
        if content is not None:
            parts.append(f"\n\n# {name}\n{content}")

    # One file per source dir keeps the context small.
    for dirname in config.SOURCE_CONTEXT_DIRS:
        for fname in list_dir_files(root, dirname):
            if "." not in fname or fname.rsplit(".", 1)[1] not in config.SOURCE_CONTEXT_EXTS:
                continue
            content = read_optional(root / dirname / fname, config.SOURCE_FILE_MAX_BYTES)
            if content is not None:
                parts.append(f"\n\n# {dirname}/{fname}\n{content}")
                break

    if memory:
        parts.append("\n\n# Conversation\n")
        for entry in memory:
            parts.append(entry + "\n---\n")
    return "".join(parts)


# --- logs ---------------------------------------------------------------------


def format_read_log(log: ReadLog) -> str:
    outcome = log.outcome
    if isinstance(outcome, ReadSuccess):
        return f"Read {log.path} ({outcome.bytes} bytes)"
    if isinstance(outcome, ReadFailed):
        return f"Failed to read {log.path}: {outcome.error}"
    return f"Skipped duplicate read of {log.path}"


def format_create_log(log: CreateLog) -> str:
    outcome = log.outcome
    if isinstance(outcome, Created):
        return f"Created {log.path}"
    if isinstance(outcome, AlreadyExists):
        return f"Skipped create (exists) {log.path}"
    if isinstance(outcome, CreateDuplicate):
        return f"Skipped duplicate create of {log.path}"
    return f"Failed to create {log.path}: {outcome.error}"


def _response_text(response: ModelResponse) -> str:
    if response.content:
        return response.content
    if response.tool_calls:
        return json.dumps(response.tool_calls, ensure_ascii=False)
    return ""


def summarize_turn(user_prompt: str, outcome: AgentOutcome) -> str:
    """Memory entry for one turn, fed back through build_context()."""
    lines = [f"User: {user_prompt}"]
    if outcome.plan:
        lines.append("Plan:")
        for idx, step in enumerate(outcome.plan, 1):
            suffix = f" [read {step.read}]" if step.read else ""
            lines.append(f"  {idx}. {step.description}{suffix}")
    else:
        lines.append("Plan: (none)")

    if outcome.reads:
        lines.append("Reads:")
        lines.extend("  " + format_read_log(log) for log in outcome.reads)
    else:
        lines.append("Reads: (none)")

    if outcome.creates:
        lines.append("Creates:")
        lines.extend("  " + format_create_log(log) for log in outcome.creates)
    else:
        lines.append("Creates: (none)")

    lines.append("Assistant:")
    return "\n".join(lines) + "\n" + truncate_utf8(_response_text(outcome.response), config.SUMMARY_RESPONSE_MAX_BYTES)
