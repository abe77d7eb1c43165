"""Fallback resolver for languages without dependency support."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from ..prompting.constants import MANIFEST_PLACEHOLDER
from .base import ManifestContext, ReconcileReport


class DefaultResolver:
    """Blanks the manifest placeholder and never reconciles anything."""

    def __init__(self, **_: Any) -> None:
        pass

    def extract_manifest_context(
        self, base_prompt: str, *, target_path: Path, workspace_root: Path
    ) -> ManifestContext:
        return ManifestContext(prompt=base_prompt.replace(MANIFEST_PLACEHOLDER, ""))

    def reconcile_dependencies(
        self, location: Optional[Path], text: str, generated_code: str
    ) -> ReconcileReport:
        return ReconcileReport()


__all__ = ["DefaultResolver"]
