"""Utilities for generating code diffs and detecting code style."""

import difflib

DIFF_CONTEXT_LINES = 3


def generate_unified_diff(
    file_path: str,
    original_content: str,
    modified_content: str,
) -> str:
    """Generate a git-style unified diff with three lines of context.

    The output depends only on the arguments, so recomputing it from the same
    contents is byte-identical.

    Args:
        file_path: Relative path from the workspace root (e.g. "src/app.tsx").
        original_content: File content before the fix ("" for a new file).
        modified_content: File content after the fix.

    Returns:
        Unified diff string with a/ b/ prefixes. Empty string if no changes.
    """
    if original_content == modified_content:
        return ""

    original_lines = original_content.splitlines(keepends=True)
    modified_lines = modified_content.splitlines(keepends=True)

    diff_gen = difflib.unified_diff(
        original_lines,
        modified_lines,
        fromfile=f"a/{file_path}",
        tofile=f"b/{file_path}",
        n=DIFF_CONTEXT_LINES,
        lineterm="",
    )

    # Lines from keepends=True still carry their newline; strip it before joining
    diff_lines = []
    for line in diff_gen:
        if line.endswith("\n"):
            diff_lines.append(line[:-1])
        else:
            diff_lines.append(line)

    return "\n".join(diff_lines)


def detect_code_style(source_code: str) -> dict[str, str]:
    """Detect code style conventions from source code.

    Args:
        source_code: The source code to analyse.

    Returns:
        Dict with keys:
            "indent": e.g. "2 spaces", "4 spaces", "tabs"
            "quotes": "single" or "double"
    """
    indent_style = "4 spaces"
    quote_style = "double"

    if not source_code:
        return {"indent": indent_style, "quotes": quote_style}

    indent_counts: dict[int, int] = {}
    for line in source_code.splitlines():
        if not line or not line[0].isspace():
            continue

        spaces = 0
        for char in line:
            if char == " ":
                spaces += 1
            elif char == "\t":
                indent_style = "tabs"
                break
            else:
                break

        if indent_style == "tabs":
            break

        if spaces > 0:
            indent_counts[spaces] = indent_counts.get(spaces, 0) + 1

    if indent_style != "tabs" and indent_counts:
        # Smallest indent level is the base unit
        indent_style = f"{min(indent_counts.keys())} spaces"

    if source_code.count("'") > source_code.count('"'):
        quote_style = "single"

    return {"indent": indent_style, "quotes": quote_style}
