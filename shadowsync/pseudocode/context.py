"""Loads files referenced by pseudocode directives into a context bundle."""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

from ..logging import get_logger
from .directives import DEFAULT_SYNTAX, DirectiveSyntax


class DirectiveContextExtractor:
    """Resolves directive paths against the workspace root and fences their contents."""

    def __init__(self, workspace_root: Path, syntax: DirectiveSyntax | None = None) -> None:
        self.workspace_root = Path(workspace_root).resolve()
        self._syntax = syntax or DEFAULT_SYNTAX
        self.logger = get_logger("context")

    def extract_paths(self, pseudocode: str) -> List[str]:
        return self._syntax.paths(pseudocode)

    def extract(self, pseudocode: str) -> str:
        """Return the labelled context bundle for every readable directive path."""
        blocks = [
            _render_block(path, content) for path, content in self.load(pseudocode)
        ]
        return "\n\n".join(blocks).strip()

    def load(self, pseudocode: str) -> List[Tuple[str, str]]:
        loaded: List[Tuple[str, str]] = []
        for relative in self.extract_paths(pseudocode):
            content = self._read(relative)
            if content is not None:
                loaded.append((relative, content))
        return loaded

    def _read(self, relative: str) -> str | None:
        candidate = (self.workspace_root / relative).resolve()
        if not candidate.is_relative_to(self.workspace_root):
            self.logger.warning(
                "Skipping context file outside the workspace: %s", relative
            )
            return None
        try:
            return candidate.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning("Failed to read context file %s: %s", relative, exc)
            return None


def _render_block(path: str, content: str) -> str:
    return f"**{path}:**\n```\n{content}\n```"


__all__ = ["DirectiveContextExtractor"]
