"""Anchor-based edits proposed by the model, and the engine that applies them.

An edit names a literal anchor in the file and a snippet to splice in:

    replace        swap the first `limit` occurrences of anchor for snippet
    insert_after   put snippet right after the first occurrence of anchor
    insert_before  put snippet right before the first occurrence of anchor

apply_edit() is a pure function of (text, edit); callers decide whether the
result is written.  parse_edits() accepts both wire shapes the model uses:
{"edits": [...]} JSON, or a list of OpenAI-style tool calls.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

OPS = ("replace", "insert_after", "insert_before")


class EditError(Exception):
    """An edit could not be applied to the current file content."""
    pass


class AnchorNotFound(EditError):
    pass


class UnsupportedOperation(EditError):
    pass


class EditParseError(ValueError):
    """Model output is not a structurally valid edit batch."""
    pass


@dataclass(frozen=True)
class Edit:
    path: str
    op: str
    anchor: str
    snippet: str
    limit: int = 1
    rationale: Optional[str] = None


@dataclass(frozen=True)
class ReadFile:
    path: str


@dataclass(frozen=True)
class ListDirectory:
    path: str = "."


@dataclass(frozen=True)
class ProvideAnswer:
    answer: str


Action = Union[Edit, ReadFile, ListDirectory, ProvideAnswer]


@dataclass
class EditBatch:
    edits: List[Edit] = field(default_factory=list)
    answers: List[str] = field(default_factory=list)
    requests: List[Action] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.edits and not self.answers


def apply_edit(original: str, edit: Edit) -> str:
    if edit.op == "replace":
        return _replace(original, edit.anchor, edit.snippet, edit.limit)
    if edit.op == "insert_after":
        idx = _find_anchor(original, edit.anchor)
        at = idx + len(edit.anchor)
        return original[:at] + edit.snippet + original[at:]
    if edit.op == "insert_before":
        idx = _find_anchor(original, edit.anchor)
        return original[:idx] + edit.snippet + original[idx:]
    raise UnsupportedOperation(f"unsupported operation: {edit.op}")


def _find_anchor(text: str, anchor: str) -> int:
    idx = text.find(anchor)
    if idx == -1:
        raise AnchorNotFound("anchor not found")
    return idx


def _replace(text: str, anchor: str, snippet: str, limit: int) -> str:
    count = text.count(anchor)
    if count < max(1, limit):
        raise AnchorNotFound(
            f"anchor not found enough times (found {count}, need {limit})"
        )
    return text.replace(anchor, snippet, limit)


# --- parsing -----------------------------------------------------------------


def _strip_markdown_code_block(content: str) -> str:
    """Strip ```json and ``` wrappers if present (models often fence JSON)."""
    s = (content or "").strip()
    if s.startswith("```"):
        first = s.find("\n")
        s = s[first + 1:] if first >= 0 else ""
        if s.rstrip().endswith("```"):
            s = s.rstrip()[:-3]
    return s.strip()


def load_json_payload(raw: Any) -> Any:
    """Decode model text (fences stripped); already-decoded values pass through."""
    if not isinstance(raw, str):
        return raw
    text = _strip_markdown_code_block(raw)
    if not text:
        raise EditParseError("empty response")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise EditParseError(f"invalid JSON: {exc}") from exc


def tool_arguments(call: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Arguments of a chat tool call as a dict (JSON-string arguments decoded)."""
    fn = call.get("function")
    if not isinstance(fn, dict):
        return None
    args = fn.get("arguments")
    if isinstance(args, str):
        try:
            args = json.loads(args or "{}")
        except json.JSONDecodeError:
            return None
    return args if isinstance(args, dict) else None


def _first_str(args: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = args.get(key)
        if isinstance(value, str):
            return value
    return None


def validate_edit(item: Any, index: Optional[int] = None) -> Edit:
    """Structural checks on one {"path","op","anchor","snippet",...} object."""
    ctx = f"edit at index {index}: " if index is not None else ""
    if not isinstance(item, dict):
        raise EditParseError(f"{ctx}expected an object")
    path = item.get("path")
    if not isinstance(path, str) or not path.strip():
        raise EditParseError(f"{ctx}path is required")
    op = item.get("op")
    if not isinstance(op, str) or not op:
        raise EditParseError(f"{ctx}op is required")
    anchor = item.get("anchor")
    if not isinstance(anchor, str):
        raise EditParseError(f"{ctx}anchor must be a string")
    snippet = item.get("snippet")
    if not isinstance(snippet, str):
        raise EditParseError(f"{ctx}snippet must be a string")
    limit = item.get("limit", 1)
    if limit is None:
        limit = 1
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise EditParseError(f"{ctx}limit must be an integer >= 1")
    rationale = item.get("rationale")
    if rationale is not None and not isinstance(rationale, str):
        raise EditParseError(f"{ctx}rationale must be a string")
    return Edit(
        path=path.strip(),
        op=op,
        anchor=anchor,
        snippet=snippet,
        limit=limit,
        rationale=rationale,
    )


def _action_from_tool_call(call: Any) -> Optional[Action]:
    if not isinstance(call, dict):
        return None
    fn = call.get("function")
    name = fn.get("name") if isinstance(fn, dict) else None
    args = tool_arguments(call)
    if not isinstance(name, str) or args is None:
        return None

    if name == "read":
        path = _first_str(args, "file_path", "path")
        return ReadFile(path) if path else None
    if name == "list":
        return ListDirectory(_first_str(args, "path") or ".")
    if name in ("answer", "provide_answer"):
        text = _first_str(args, "text", "answer")
        return ProvideAnswer(text) if text is not None else None
    if name == "edit":
        path = _first_str(args, "file_path", "path")
        old = _first_str(args, "old_string")
        new = _first_str(args, "new_string")
        if not path or old is None or new is None:
            return None
        return Edit(path=path, op="replace", anchor=old, snippet=new)
    if name in ("replace_text", "insert_after", "insert_before"):
        op = "replace" if name == "replace_text" else name
        item = {
            "path": _first_str(args, "path", "file_path"),
            "op": op,
            "anchor": _first_str(args, "anchor", "old_string"),
            "snippet": _first_str(args, "snippet", "new_string", "text"),
            "limit": args.get("limit", 1),
            "rationale": args.get("rationale"),
        }
        try:
            return validate_edit(item)
        except EditParseError:
            return None
    return None


def parse_actions(raw: Any) -> List[Action]:
    """Tool-call list (JSON text or decoded) -> actions. Unknown tools are dropped."""
    calls = load_json_payload(raw)
    if isinstance(calls, dict) and isinstance(calls.get("tool_calls"), list):
        calls = calls["tool_calls"]
    if not isinstance(calls, list):
        raise EditParseError("failed to parse tool calls: expected a list")
    actions: List[Action] = []
    for call in calls:
        action = _action_from_tool_call(call)
        if action is not None:
            actions.append(action)
    return actions


def parse_edits(raw: Any) -> EditBatch:
    """Model output (text, decoded JSON, or tool_calls list) -> EditBatch."""
    data = load_json_payload(raw)
    if isinstance(data, dict) and "edits" in data:
        items = data.get("edits")
        if not isinstance(items, list):
            raise EditParseError("edits must be a list")
        batch = EditBatch(edits=[validate_edit(item, i) for i, item in enumerate(items)])
        answer = data.get("answer")
        if isinstance(answer, str) and answer.strip():
            batch.answers.append(answer)
        return batch

    batch = EditBatch()
    for action in parse_actions(data):
        if isinstance(action, Edit):
            batch.edits.append(action)
        elif isinstance(action, ProvideAnswer):
            batch.answers.append(action.answer)
        else:
            batch.requests.append(action)
    return batch
