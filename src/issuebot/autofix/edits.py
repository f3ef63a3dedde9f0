"""Line-level edit application."""

from typing import Iterable, List

from src.issuebot.analysis.models import LineAction, LineEdit


def apply_line_edits(content: str, edits: Iterable[LineEdit]) -> str:
    """Apply line edits to file content.

    Edits are applied in descending line order so that an edit never
    shifts the line numbers another edit refers to. Line numbers are
    1-based and always refer to the original content:

    - add inserts a new line before the given line (a line past the end
      appends)
    - remove deletes the line, ignored when out of range
    - replace overwrites the line, ignored when out of range
    """
    lines: List[str] = content.split("\n")
    ordered = sorted(edits, key=lambda edit: edit.line, reverse=True)

    for edit in ordered:
        index = edit.line - 1
        if edit.action == LineAction.ADD:
            lines.insert(min(index, len(lines)), edit.content)
        elif edit.action == LineAction.REMOVE:
            if 0 <= index < len(lines):
                del lines[index]
        elif edit.action == LineAction.REPLACE:
            if 0 <= index < len(lines):
                lines[index] = edit.content

    return "\n".join(lines)
