"""Prompts and tool schemas sent to the model."""

from typing import Any, Dict, List

from .edits import OPS

EDIT_SYSTEM_PROMPT = """\
You are Smol CLI, a conservative coding agent that proposes safe, minimal file edits.
Return ONLY JSON with the schema:
{"edits":[{"path":"...", "op":"%s", "anchor":"...", "snippet":"...", "limit":1, "rationale":"..."}]}
- Use small, anchor-based changes. The anchor must be copied exactly from the file.
- To create a new file, use op "insert_after" with an empty anchor and the whole file as snippet.
- Never return shell commands.
- Keep edits minimal and specific.
- If the user only asks a question, return {"edits":[], "answer":"..."}.""" % "|".join(OPS)

PLAN_SYSTEM_PROMPT = """\
You are the planner for Smol CLI, a coding agent working in the user's repository.
Break the request into a short plan (1-6 steps) of files to read or create before editing.
Return ONLY JSON with the schema:
{"plan":[{"description":"...", "read":"<repo-relative path or omit>", "create":"<repo-relative path or omit>"}]}
- Use repository-relative paths; never absolute paths.
- Read only files that matter for the request.
- For pure questions, use a single step whose description starts with "Answer"."""


def _tool(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


_REASON = {"type": "string", "description": "Why this step is needed"}

PLAN_TOOLS_JSON: List[Dict[str, Any]] = [
    _tool("read_file", "Read a file into context.",
          {"path": {"type": "string"}, "reason": _REASON}, ["path", "reason"]),
    _tool("create_file", "Create an empty file that later edits will fill.",
          {"path": {"type": "string"}, "reason": _REASON}, ["path", "reason"]),
    _tool("list_directory", "Look at a directory listing.",
          {"path": {"type": "string", "default": "."}, "reason": _REASON}, ["reason"]),
    _tool("analyze_code", "Reason about a part of the code base.",
          {"focus": {"type": "string"}, "reason": _REASON}, ["focus", "reason"]),
    _tool("search_files", "Search the repository for a pattern.",
          {"pattern": {"type": "string"}, "reason": _REASON}, ["pattern", "reason"]),
    _tool("answer_question", "Answer the user's question without editing.",
          {"question": {"type": "string"}, "reason": _REASON}, ["question", "reason"]),
]

_EDIT_PROPS = {
    "path": {"type": "string", "description": "Path relative to project root"},
    "anchor": {"type": "string", "description": "Exact text copied from the file"},
    "snippet": {"type": "string"},
    "rationale": {"type": "string"},
}

EDIT_TOOLS_JSON: List[Dict[str, Any]] = [
    _tool("replace_text", "Replace the anchor text with the snippet.",
          dict(_EDIT_PROPS, limit={"type": "integer", "minimum": 1, "default": 1}),
          ["path", "anchor", "snippet"]),
    _tool("insert_after", "Insert the snippet right after the anchor.",
          _EDIT_PROPS, ["path", "anchor", "snippet"]),
    _tool("insert_before", "Insert the snippet right before the anchor.",
          _EDIT_PROPS, ["path", "anchor", "snippet"]),
    _tool("provide_answer", "Answer the user in prose when no edit is needed.",
          {"answer": {"type": "string"}}, ["answer"]),
]


def plan_messages(user_prompt: str) -> List[Dict[str, str]]:
    return [{"role": "user", "content": user_prompt}]


def edit_messages(user_prompt: str, context: str) -> List[Dict[str, str]]:
    return [
        {"role": "user", "content": context},
        {"role": "user", "content": user_prompt},
    ]
