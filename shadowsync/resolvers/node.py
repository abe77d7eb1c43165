"""package.json resolver for TypeScript and JavaScript targets."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Dict, Optional, Set

from ..errors import ManifestParseError
from ..logging import get_logger
from ..models import DependencyManifest
from ..prompting.constants import MANIFEST_PLACEHOLDER
from .base import ManifestContext, ReconcileReport
from .utils import (
    PackageInstaller,
    detect_node_package_manager,
    find_manifest,
    manifest_context,
    node_install_command,
)

NODE_BUILTINS = frozenset(
    {
        "assert",
        "async_hooks",
        "buffer",
        "child_process",
        "cluster",
        "console",
        "constants",
        "crypto",
        "dgram",
        "diagnostics_channel",
        "dns",
        "domain",
        "events",
        "fs",
        "http",
        "http2",
        "https",
        "inspector",
        "module",
        "net",
        "os",
        "path",
        "perf_hooks",
        "process",
        "punycode",
        "querystring",
        "readline",
        "repl",
        "stream",
        "string_decoder",
        "sys",
        "timers",
        "tls",
        "trace_events",
        "tty",
        "url",
        "util",
        "v8",
        "vm",
        "wasi",
        "worker_threads",
        "zlib",
    }
)

_SPECIFIERS = (
    re.compile(r"""\bfrom\s*['"]([^'"\n]+)['"]"""),
    re.compile(r"""\bimport\s*['"]([^'"\n]+)['"]"""),
    re.compile(r"""\b(?:require|import)\s*\(\s*['"]([^'"\n]+)['"]\s*\)"""),
)

_DEPENDENCY_KEYS = {
    "dependencies": None,
    "devDependencies": "dev",
    "peerDependencies": "peer",
    "optionalDependencies": "optional",
}


def package_name(specifier: str) -> Optional[str]:
    """Return the installable package for an import specifier, or None for local/builtin ones."""
    if specifier.startswith((".", "/", "~", "#", "node:")) or ":" in specifier:
        return None
    parts = specifier.split("/")
    if specifier.startswith("@"):
        if len(parts) < 2 or parts[0] == "@" or not parts[1]:
            return None
        return f"{parts[0]}/{parts[1]}"
    return parts[0] or None


class NodeResolver:
    """Reads package.json and installs missing packages with the project's package manager."""

    manifest_names = ("package.json",)

    def __init__(self, *, installer: PackageInstaller | None = None) -> None:
        self.installer = installer or PackageInstaller()
        self.logger = get_logger("resolvers.node")

    def extract_manifest_context(
        self, base_prompt: str, *, target_path: Path, workspace_root: Path
    ) -> ManifestContext:
        location = find_manifest(target_path, workspace_root, self.manifest_names)
        return manifest_context(base_prompt, location, MANIFEST_PLACEHOLDER)

    def parse_manifest(self, location: Path, text: str) -> DependencyManifest:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ManifestParseError(f"Could not parse package.json: {exc}") from exc
        if not isinstance(data, dict):
            raise ManifestParseError("package.json must contain an object")

        declared: Set[str] = set()
        scopes: Dict[str, Set[str]] = {}
        for key, scope in _DEPENDENCY_KEYS.items():
            values = data.get(key)
            names = set(values) if isinstance(values, dict) else set()
            if scope is None:
                declared.update(names)
            else:
                scopes.setdefault(scope, set()).update(names)
        name = data.get("name")
        return DependencyManifest(
            name=name if isinstance(name, str) and name else None,
            path=location,
            declared=declared,
            scopes=scopes,
        )

    def used_identifiers(self, code: str) -> Set[str]:
        packages: Set[str] = set()
        for pattern in _SPECIFIERS:
            for match in pattern.finditer(code):
                name = package_name(match.group(1).strip())
                if name:
                    packages.add(name)
        return packages

    def reconcile_dependencies(
        self, location: Optional[Path], text: str, generated_code: str
    ) -> ReconcileReport:
        report = ReconcileReport(used=self.used_identifiers(generated_code))
        if location is None:
            self.logger.debug("No package.json found; skipping dependency reconciliation")
            return report
        try:
            manifest = self.parse_manifest(location, text)
        except ManifestParseError as exc:
            self.logger.error("%s", exc)
            self.installer.warn(
                "Could not parse package.json; dependency auto-install skipped.", report
            )
            return report

        known = manifest.all_declared()
        report.missing = sorted(
            name
            for name in report.used
            if name not in known and name.split("/")[0] not in NODE_BUILTINS
        )
        if report.missing:
            manager = detect_node_package_manager(location.parent)
            self.installer.install(
                node_install_command(manager, report.missing),
                cwd=location.parent,
                packages=list(report.missing),
                report=report,
            )
        return report


__all__ = ["NODE_BUILTINS", "NodeResolver", "package_name"]
