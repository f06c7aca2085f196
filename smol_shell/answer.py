"""Render free-text model answers for the activity log.

Prose is kept as-is; each fenced code block is shown as a diff against an
empty file (answer.<ext>) so code in answers looks like proposed edits.
"""

import re
from typing import List, Optional, Tuple

from .diff import unified_diff

_CODE_BLOCK = re.compile(r"```([A-Za-z0-9_+\-.]*)\n(.*?)```\s*", re.DOTALL)

_LANG_EXT = {
    "rs": "rs", "rust": "rs",
    "ts": "ts", "typescript": "ts",
    "js": "js", "javascript": "js",
    "jsx": "jsx",
    "tsx": "tsx",
    "py": "py", "python": "py",
    "html": "html",
    "css": "css",
    "json": "json",
    "toml": "toml",
    "yaml": "yaml", "yml": "yaml",
    "sh": "sh", "bash": "sh",
    "sql": "sql",
    "java": "java",
    "c": "c",
    "cpp": "cpp", "c++": "cpp",
}


def language_to_ext(lang: Optional[str]) -> str:
    return _LANG_EXT.get((lang or "").lower(), "txt")


def extract_code_blocks(text: str) -> List[Tuple[Optional[str], str]]:
    """[(language or None, code), ...] in order of appearance."""
    text = (text or "").replace("\r\n", "\n")
    return [
        ((m.group(1) or "").strip() or None, m.group(2) or "")
        for m in _CODE_BLOCK.finditer(text)
    ]


def _plain_segments(text: str) -> List[str]:
    segments: List[str] = []
    last_end = 0
    for m in _CODE_BLOCK.finditer(text):
        before = text[last_end:m.start()].strip()
        if before:
            segments.append(before)
        last_end = m.end()
    after = text[last_end:].strip()
    if after:
        segments.append(after)
    return segments


def format_answer(answer: str) -> str:
    trimmed = (answer or "").replace("\r\n", "\n").strip()
    if not trimmed:
        return ""
    blocks = extract_code_blocks(trimmed)
    if not blocks:
        return trimmed

    out: List[str] = []
    plain = _plain_segments(trimmed)
    if plain:
        out.append("\n\n".join(plain) + "\n\n")
    for idx, (lang, code) in enumerate(blocks):
        code = code.strip("\n") + "\n"
        out.append(unified_diff("", code, f"answer.{language_to_ext(lang)}"))
        if idx + 1 < len(blocks):
            out.append("\n")
    return "".join(out).rstrip()
