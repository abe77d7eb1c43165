"""Pseudocode inspection: directives, context bundles and revision diffs."""

from .context import DirectiveContextExtractor
from .diff import DiffEngine, DiffLine
from .directives import DEFAULT_SYNTAX, DirectiveSyntax

__all__ = [
    "DEFAULT_SYNTAX",
    "DiffEngine",
    "DiffLine",
    "DirectiveContextExtractor",
    "DirectiveSyntax",
]
