"""Shared constants for prompt assembly."""

from __future__ import annotations

# Left in rendered prompts for the language resolver to fill with manifest text.
MANIFEST_PLACEHOLDER = "{{manifest}}"

DEFAULT_TEMPLATE_SET = "default"
SYSTEM_TEMPLATE = "system_prompt.j2"
USER_TEMPLATE = "user_prompt.j2"

# Languages that reuse another language's template set.
TEMPLATE_ALIASES: dict[str, str] = {
    "tsx": "ts",
    "jsx": "js",
    "mjs": "js",
    "cjs": "js",
    "kt": "java",
    "kts": "java",
    "pyi": "py",
}

LANGUAGE_NAMES: dict[str, str] = {
    "c": "C",
    "cc": "C++",
    "cpp": "C++",
    "cs": "C#",
    "dart": "Dart",
    "go": "Go",
    "h": "C",
    "hpp": "C++",
    "java": "Java",
    "js": "JavaScript",
    "jsx": "JavaScript (JSX)",
    "kt": "Kotlin",
    "mjs": "JavaScript",
    "cjs": "JavaScript",
    "php": "PHP",
    "py": "Python",
    "rb": "Ruby",
    "rs": "Rust",
    "scala": "Scala",
    "swift": "Swift",
    "ts": "TypeScript",
    "tsx": "TypeScript (TSX)",
}


def language_name(tag: str) -> str:
    """Return a display name for a language tag, falling back to the extension."""
    return LANGUAGE_NAMES.get(tag, f".{tag}" if tag else "plain text")


__all__ = [
    "DEFAULT_TEMPLATE_SET",
    "LANGUAGE_NAMES",
    "MANIFEST_PLACEHOLDER",
    "SYSTEM_TEMPLATE",
    "TEMPLATE_ALIASES",
    "USER_TEMPLATE",
    "language_name",
]
