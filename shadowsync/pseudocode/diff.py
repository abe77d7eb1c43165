"""Line diffs between pseudocode revisions."""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import List, Optional

from .directives import DEFAULT_SYNTAX, DirectiveSyntax

ADDED = "+ "
REMOVED = "- "
UNCHANGED = "  "


def split_lines(text: str) -> List[str]:
    """Split on newlines only, dropping a trailing carriage return from each line.

    Unlike ``str.splitlines`` this keeps form feeds and Unicode separators
    inside their line, so joining with newlines gives the text back.
    """
    if not text:
        return []
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


@dataclass(frozen=True)
class DiffLine:
    """A single prefixed line of a pseudocode diff."""

    prefix: str
    text: str

    def render(self) -> str:
        return f"{self.prefix}{self.text}"


class DiffEngine:
    """Renders the delta between the last checkpoint and the current pseudocode.

    Directive-only lines are removed from both revisions first: they name
    context files and carry no code intent of their own.
    """

    def __init__(self, syntax: DirectiveSyntax | None = None) -> None:
        self._syntax = syntax or DEFAULT_SYNTAX

    def build(self, previous: Optional[str], current: str) -> str:
        """Return the newline-joined, prefixed diff of two pseudocode revisions."""
        rendered = "\n".join(line.render() for line in self.lines(previous, current))
        return rendered.rstrip()

    def lines(self, previous: Optional[str], current: str) -> List[DiffLine]:
        current_lines = split_lines(self.refine(current))
        previous_refined = self.refine(previous) if previous is not None else ""
        if not previous_refined:
            return [DiffLine(ADDED, line) for line in current_lines]

        previous_lines = split_lines(previous_refined)
        matcher = difflib.SequenceMatcher(a=previous_lines, b=current_lines, autojunk=False)
        result: List[DiffLine] = []
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                result.extend(DiffLine(UNCHANGED, line) for line in previous_lines[i1:i2])
                continue
            if tag in {"delete", "replace"}:
                result.extend(DiffLine(REMOVED, line) for line in previous_lines[i1:i2])
            if tag in {"insert", "replace"}:
                result.extend(DiffLine(ADDED, line) for line in current_lines[j1:j2])
        return result

    def refine(self, text: str) -> str:
        """Strip directive lines and trailing whitespace from a revision."""
        return self._syntax.strip_lines(text).rstrip()

    def has_changes(self, previous: Optional[str], current: str) -> bool:
        return any(line.prefix != UNCHANGED for line in self.lines(previous, current))

    def summary(self, previous: Optional[str], current: str) -> str:
        added = removed = unchanged = 0
        for line in self.lines(previous, current):
            if line.prefix == ADDED:
                added += 1
            elif line.prefix == REMOVED:
                removed += 1
            else:
                unchanged += 1
        return f"+{added} -{removed} ~{unchanged} lines"

    @staticmethod
    def reconstruct(diff_text: str, side: str = "new") -> str:
        """Re-derive one revision from diff markup.

        ``side="new"`` keeps unchanged and added lines, ``side="old"`` keeps
        unchanged and removed lines.
        """
        if side not in {"new", "old"}:
            raise ValueError(f"side must be 'new' or 'old', not {side!r}")
        keep = ADDED if side == "new" else REMOVED
        lines: List[str] = []
        for raw in split_lines(diff_text):
            if len(raw) < 2 and not raw.strip():
                lines.append("")
                continue
            prefix, text = raw[:2], raw[2:]
            if prefix == UNCHANGED or prefix == keep:
                lines.append(text)
            elif prefix not in {ADDED, REMOVED}:
                raise ValueError(f"Unrecognised diff line: {raw!r}")
        return "\n".join(lines)


__all__ = ["ADDED", "REMOVED", "UNCHANGED", "DiffEngine", "DiffLine", "split_lines"]
