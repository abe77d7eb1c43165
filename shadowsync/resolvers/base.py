"""Capability protocol implemented by every dependency resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Set, runtime_checkable


@dataclass
class ManifestContext:
    """User prompt with the manifest substituted, plus where the manifest lives."""

    prompt: str
    location: Optional[Path] = None
    text: str = ""


@dataclass
class ReconcileReport:
    """What a reconciliation pass found and did."""

    used: Set[str] = field(default_factory=set)
    missing: List[str] = field(default_factory=list)
    installed: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.missing and not self.warnings


@runtime_checkable
class DependencyResolver(Protocol):
    """Locates a language's manifest and reconciles generated imports against it."""

    def extract_manifest_context(
        self, base_prompt: str, *, target_path: Path, workspace_root: Path
    ) -> ManifestContext:
        ...

    def reconcile_dependencies(
        self, location: Optional[Path], text: str, generated_code: str
    ) -> ReconcileReport:
        ...


__all__ = ["DependencyResolver", "ManifestContext", "ReconcileReport"]
