"""pubspec.yaml resolver for Dart and Flutter targets."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Set

import yaml

from ..errors import ManifestParseError
from ..logging import get_logger
from ..models import DependencyManifest
from ..prompting.constants import MANIFEST_PLACEHOLDER
from .base import ManifestContext, ReconcileReport
from .utils import PackageInstaller, find_manifest, manifest_context

SDK_PACKAGES = frozenset({"flutter", "flutter_test"})

_PACKAGE_IMPORT = re.compile(r"""\b(?:import|export)\s+['"]package:([A-Za-z0-9_]+)/""")


class DartResolver:
    manifest_names = ("pubspec.yaml",)

    def __init__(self, *, installer: PackageInstaller | None = None) -> None:
        self.installer = installer or PackageInstaller()
        self.logger = get_logger("resolvers.dart")

    def extract_manifest_context(
        self, base_prompt: str, *, target_path: Path, workspace_root: Path
    ) -> ManifestContext:
        location = find_manifest(target_path, workspace_root, self.manifest_names)
        return manifest_context(base_prompt, location, MANIFEST_PLACEHOLDER)

    def parse_manifest(self, location: Path, text: str) -> DependencyManifest:
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ManifestParseError(f"Could not parse pubspec.yaml: {exc}") from exc
        if not isinstance(data, dict):
            raise ManifestParseError("pubspec.yaml must contain a mapping")
        name = data.get("name")
        return DependencyManifest(
            name=str(name) if name else None,
            path=location,
            declared=_keys(data.get("dependencies")),
            scopes={
                "dev": _keys(data.get("dev_dependencies")),
                "override": _keys(data.get("dependency_overrides")),
            },
        )

    def used_identifiers(self, code: str) -> Set[str]:
        return {match.group(1) for match in _PACKAGE_IMPORT.finditer(code)}

    def reconcile_dependencies(
        self, location: Optional[Path], text: str, generated_code: str
    ) -> ReconcileReport:
        report = ReconcileReport(used=self.used_identifiers(generated_code))
        if location is None:
            self.logger.debug("No pubspec.yaml found; skipping dependency reconciliation")
            return report
        try:
            manifest = self.parse_manifest(location, text)
        except ManifestParseError as exc:
            self.logger.error("%s", exc)
            self.installer.warn(
                "Could not parse pubspec.yaml; dependency auto-install skipped.", report
            )
            return report

        known = manifest.all_declared() | SDK_PACKAGES
        report.missing = sorted(report.used - known)
        if report.missing:
            tool = "flutter" if "flutter" in manifest.declared else "dart"
            self.installer.install(
                [tool, "pub", "add", *report.missing],
                cwd=location.parent,
                packages=list(report.missing),
                report=report,
            )
        return report


def _keys(value: object) -> Set[str]:
    return {str(key) for key in value} if isinstance(value, dict) else set()


__all__ = ["DartResolver", "SDK_PACKAGES"]
