"""Builds system and user prompts for pseudocode conversion."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List

from jinja2 import Environment, FileSystemLoader

from ..logging import get_logger
from .constants import (
    DEFAULT_TEMPLATE_SET,
    MANIFEST_PLACEHOLDER,
    SYSTEM_TEMPLATE,
    TEMPLATE_ALIASES,
    USER_TEMPLATE,
    language_name,
)


@dataclass(frozen=True)
class PromptPair:
    """Finished prompts ready for the generation collaborator."""

    system: str
    user: str


class PromptAssembler:
    """Renders per-language Jinja templates with the diff, context and target code.

    Templates are looked up as ``<language>/system_prompt.j2`` and
    ``<language>/user_prompt.j2``; the ``default`` set is used for languages
    without their own. A user ``templates_dir`` shadows the bundled templates.
    """

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir
        self._env = self._create_env(templates_dir)
        self.logger = get_logger("prompting")

    def assemble(
        self,
        language: str,
        *,
        diff: str,
        context: str,
        existing_code: str,
        manifest: str = MANIFEST_PLACEHOLDER,
        **extra: Any,
    ) -> PromptPair:
        variables = {
            "language": language,
            "language_name": language_name(language),
            "pseudocode": diff,
            "context": context,
            "existing_code": existing_code,
            "manifest": manifest,
        }
        variables.update(extra)
        system = self._render(language, SYSTEM_TEMPLATE, variables)
        user = self._render(language, USER_TEMPLATE, variables)
        return PromptPair(system=system, user=user)

    def _render(self, language: str, template_name: str, variables: dict[str, Any]) -> str:
        candidates: List[str] = []
        if language:
            candidates.append(f"{language}/{template_name}")
            alias = TEMPLATE_ALIASES.get(language)
            if alias:
                candidates.append(f"{alias}/{template_name}")
        candidates.append(f"{DEFAULT_TEMPLATE_SET}/{template_name}")
        template = self._env.select_template(candidates)
        self.logger.debug("Rendering %s for language %r", template.name, language)
        return template.render(**variables).strip()

    @staticmethod
    def _create_env(templates_dir: Path | None) -> Environment:
        directories = []
        if templates_dir:
            directories.append(str(templates_dir))
        default_dir = str(Path(__file__).with_name("templates"))
        if default_dir not in directories:
            directories.append(default_dir)
        loader = FileSystemLoader(directories)
        return Environment(loader=loader, autoescape=False, trim_blocks=True, lstrip_blocks=True)


__all__ = ["PromptAssembler", "PromptPair"]
