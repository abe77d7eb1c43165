"""Cargo dependency resolver."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Optional, Set

from ..errors import ManifestParseError
from ..logging import get_logger
from ..models import DependencyManifest
from ..prompting.constants import MANIFEST_PLACEHOLDER
from .base import ManifestContext, ReconcileReport
from .utils import PackageInstaller, find_manifest, manifest_context, parse_toml

BUILTIN_CRATES = frozenset(
    {"std", "core", "alloc", "proc_macro", "test", "crate", "self", "super"}
)

_USE = re.compile(
    r"(?:\bpub\s*(?:\([^)]*\)\s*)?)?\buse\s+(?:::)?([A-Za-z_]\w*)\s*(?:::|;|\s+as\b)"
)
_BRACE_USE = re.compile(r"\buse\s+(?:::)?\{([^}]+)\}\s*;")
_EXTERN_CRATE = re.compile(r"\bextern\s+crate\s+([A-Za-z_]\w*)")
_IDENT = re.compile(r"[A-Za-z_]\w*")
_MOD = re.compile(r"^[ \t]*(?:pub\s*(?:\([^)]*\)\s*)?)?mod\s+([A-Za-z_]\w*)\s*[;{]", re.MULTILINE)
_CRATE_ROOTS = frozenset({"main", "lib", "mod"})


def _crate_key(name: str) -> str:
    return name.replace("-", "_")


class RustResolver:
    """Reads Cargo.toml and runs ``cargo add`` for crates used but not declared."""

    manifest_names = ("Cargo.toml",)

    def __init__(self, *, installer: PackageInstaller | None = None) -> None:
        self.installer = installer or PackageInstaller()
        self.logger = get_logger("resolvers.rust")

    def extract_manifest_context(
        self, base_prompt: str, *, target_path: Path, workspace_root: Path
    ) -> ManifestContext:
        location = find_manifest(target_path, workspace_root, self.manifest_names)
        return manifest_context(base_prompt, location, MANIFEST_PLACEHOLDER)

    def parse_manifest(self, location: Path, text: str) -> DependencyManifest:
        data = parse_toml(text, location.name)
        package = data.get("package") if isinstance(data.get("package"), dict) else {}
        lib = data.get("lib") if isinstance(data.get("lib"), dict) else {}
        workspace = data.get("workspace") if isinstance(data.get("workspace"), dict) else {}

        scopes: Dict[str, Set[str]] = {
            "dev": _table_keys(data.get("dev-dependencies")),
            "build": _table_keys(data.get("build-dependencies")),
            "workspace": _table_keys(workspace.get("dependencies")),
            "target": set(),
        }
        targets = data.get("target")
        if isinstance(targets, dict):
            for table in targets.values():
                if not isinstance(table, dict):
                    continue
                for key in ("dependencies", "dev-dependencies", "build-dependencies"):
                    scopes["target"].update(_table_keys(table.get(key)))

        declared = _table_keys(data.get("dependencies"))
        if lib.get("name"):
            declared.add(str(lib["name"]))
        return DependencyManifest(
            name=str(package["name"]) if package.get("name") else None,
            path=location,
            declared=declared,
            scopes=scopes,
        )

    def used_identifiers(self, code: str) -> Set[str]:
        crates: Set[str] = set()
        crates.update(match.group(1) for match in _USE.finditer(code))
        for match in _BRACE_USE.finditer(code):
            for item in match.group(1).split(","):
                head = _IDENT.match(item.strip().lstrip(":"))
                if head:
                    crates.add(head.group(0))
        crates.update(match.group(1) for match in _EXTERN_CRATE.finditer(code))
        return crates

    def local_modules(self, crate_dir: Path, code: str = "") -> Set[str]:
        """Modules declared in ``code`` or present as files under the crate's ``src``."""
        names = {match.group(1) for match in _MOD.finditer(code)}
        src = crate_dir / "src"
        if src.is_dir():
            for path in src.rglob("*.rs"):
                if path.stem not in _CRATE_ROOTS:
                    names.add(path.stem)
                elif path.stem == "mod" and path.parent != src:
                    names.add(path.parent.name)
        return names

    def reconcile_dependencies(
        self, location: Optional[Path], text: str, generated_code: str
    ) -> ReconcileReport:
        report = ReconcileReport(used=self.used_identifiers(generated_code))
        if location is None:
            self.logger.debug("No Cargo.toml found; skipping dependency reconciliation")
            return report
        try:
            manifest = self.parse_manifest(location, text)
        except ManifestParseError as exc:
            self.logger.error("%s", exc)
            self.installer.warn(
                "Could not parse Cargo.toml; dependency auto-install skipped.", report
            )
            return report

        known = {_crate_key(name) for name in manifest.all_declared()} | BUILTIN_CRATES
        known.update(self.local_modules(location.parent, generated_code))
        report.missing = sorted(crate for crate in report.used if _crate_key(crate) not in known)
        if report.missing:
            packages = [crate.replace("_", "-") for crate in report.missing]
            self.installer.install(
                ["cargo", "add", *packages],
                cwd=location.parent,
                packages=packages,
                report=report,
            )
        return report


def _table_keys(value: object) -> Set[str]:
    return {str(key) for key in value} if isinstance(value, dict) else set()


__all__ = ["BUILTIN_CRATES", "RustResolver"]
