"""Plan stage: turn the model's planning reply into PlanSteps.

Two reply shapes are understood: {"plan": [{"description", "read"?, "create"?}]}
and a list of planning tool calls (read_file, create_file, list_directory,
analyze_code, search_files, answer_question).  Anything else falls back to a
single "review and answer" step so a turn always has a plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from .edits import EditParseError, load_json_payload, tool_arguments


@dataclass(frozen=True)
class PlanStep:
    description: str
    read: Optional[str] = None
    create: Optional[str] = None

    @property
    def is_answer(self) -> bool:
        return "Answer" in self.description


def _opt_path(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _step_from_tool_call(call: Any) -> Optional[PlanStep]:
    if not isinstance(call, dict):
        return None
    fn = call.get("function")
    name = fn.get("name") if isinstance(fn, dict) else None
    args = tool_arguments(call)
    if not isinstance(name, str) or args is None:
        return None

    reason = args.get("reason")
    if not isinstance(reason, str):
        return None

    def arg(key: str) -> Optional[str]:
        value = args.get(key)
        return value if isinstance(value, str) else None

    if name == "read_file" and arg("path"):
        return PlanStep(f"Read {arg('path')}: {reason}", read=arg("path"))
    if name == "create_file" and arg("path"):
        return PlanStep(f"Create {arg('path')}: {reason}", create=arg("path"))
    if name == "list_directory":
        return PlanStep(f"List directory {arg('path') or '.'}: {reason}")
    if name == "analyze_code" and arg("focus") is not None:
        return PlanStep(f"Analyze {arg('focus')}: {reason}")
    if name == "search_files" and arg("pattern") is not None:
        return PlanStep(f"Search for {arg('pattern')}: {reason}")
    if name == "answer_question" and arg("question") is not None:
        return PlanStep(f"Answer '{arg('question')}': {reason}")
    return None


def _step_from_object(item: Any) -> Optional[PlanStep]:
    if not isinstance(item, dict):
        return None
    description = item.get("description")
    if not isinstance(description, str) or not description.strip():
        return None
    return PlanStep(
        description=description.strip(),
        read=_opt_path(item.get("read")),
        create=_opt_path(item.get("create")),
    )


def parse_plan(raw: Any) -> Optional[List[PlanStep]]:
    """Plan steps from model output, or None when it is not a plan at all.

    Malformed entries are dropped; an empty list means "parsed, nothing usable".
    """
    try:
        data = load_json_payload(raw)
    except EditParseError:
        return None

    if isinstance(data, dict):
        if isinstance(data.get("tool_calls"), list):
            data = data["tool_calls"]
        elif isinstance(data.get("plan"), list):
            return [s for s in (_step_from_object(i) for i in data["plan"]) if s is not None]
        else:
            return None
    if not isinstance(data, list):
        return None
    steps: List[PlanStep] = []
    for item in data:
        step = _step_from_tool_call(item) if isinstance(item, dict) and "function" in item else _step_from_object(item)
        if step is not None:
            steps.append(step)
    return steps


def fallback_plan(user_prompt: str) -> List[PlanStep]:
    return [PlanStep(f"Review project context and answer: {user_prompt}")]


def plan_or_fallback(raw: Any, user_prompt: str) -> List[PlanStep]:
    steps = parse_plan(raw)
    if not steps:
        return fallback_plan(user_prompt)
    return steps
