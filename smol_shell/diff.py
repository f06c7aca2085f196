import difflib

NO_NEWLINE_MARKER = "\\ No newline at end of file"


def unified_diff(old_content: str, new_content: str, path: str, context_lines: int = 3) -> str:
    """Unified diff of old -> new with a/<path> and b/<path> headers.

    Empty string when the two texts are identical.
    """
    old_lines = (old_content or "").splitlines(keepends=True)
    new_lines = (new_content or "").splitlines(keepends=True)
    out = []
    for line in difflib.unified_diff(
        old_lines,
        new_lines,
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        n=context_lines,
    ):
        if line.endswith("\n"):
            out.append(line)
        else:
            out.append(line + "\n" + NO_NEWLINE_MARKER + "\n")
    return "".join(out)


def count_changes(diff_text: str):
    """(added, removed) line counts, headers excluded."""
    added = removed = 0
    in_hunk = False
    for line in diff_text.splitlines():
        if line.startswith("@@"):
            in_hunk = True
            continue
        if not in_hunk:
            continue
        if line.startswith("+"):
            added += 1
        elif line.startswith("-"):
            removed += 1
    return added, removed
