"""Recognition of file directives embedded in pseudocode.

A directive is a call-like token such as ``use("src/api.ts", "src/db.ts")``.
Every configured directive name is treated identically: the quoted arguments
name workspace files whose contents are sent to the model as context.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence

from ..config import DEFAULT_DIRECTIVES

_QUOTED_ARGUMENT = re.compile(r'"([^"\n]+)"')


class DirectiveSyntax:
    """Compiled patterns for a set of directive names."""

    def __init__(self, names: Iterable[str] = DEFAULT_DIRECTIVES) -> None:
        unique = [name for name in dict.fromkeys(names) if name]
        if not unique:
            raise ValueError("At least one directive name is required")
        self.names: Sequence[str] = tuple(unique)
        alternation = "|".join(
            re.escape(name) for name in sorted(self.names, key=len, reverse=True)
        )
        self._call_pattern = re.compile(
            rf"(?<![\w.])(?:{alternation})\s*\(([^)]*)\)", re.DOTALL
        )
        self._line_pattern = re.compile(
            rf"^[ \t]*(?:{alternation})[ \t]*\("
            r'\s*"[^"\n]*"(?:\s*,\s*"[^"\n]*")*\s*,?\s*'
            r"\)[ \t]*;?[ \t]*(?:\r?\n|$)",
            re.MULTILINE,
        )

    def paths(self, text: str) -> List[str]:
        """Return every quoted path across all directive calls, first-seen order, deduplicated."""
        found: List[str] = []
        for match in self._call_pattern.finditer(text):
            found.extend(arg.strip() for arg in _QUOTED_ARGUMENT.findall(match.group(1)))
        return [path for path in dict.fromkeys(found) if path]

    def strip_lines(self, text: str) -> str:
        """Remove lines that consist solely of a directive call."""
        return self._line_pattern.sub("", text)

    def is_directive_line(self, line: str) -> bool:
        return self._line_pattern.fullmatch(line.rstrip("\r\n")) is not None


DEFAULT_SYNTAX = DirectiveSyntax()


__all__ = ["DEFAULT_SYNTAX", "DirectiveSyntax"]
