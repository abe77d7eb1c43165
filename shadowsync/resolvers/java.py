"""Maven/Gradle resolver for Java and Kotlin targets.

There is no reliable way to map an import to a coordinate locally, so missing
imports are looked up on Maven Central and surfaced as suggestions instead of
being installed.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Set

from ..errors import DependencyInstallError, ManifestParseError
from ..logging import get_logger
from ..models import DependencyManifest
from ..prompting.constants import MANIFEST_PLACEHOLDER
from .base import ManifestContext, ReconcileReport
from .utils import (
    JsonFetcher,
    PackageInstaller,
    fetch_json,
    find_manifest,
    gradle_group,
    manifest_context,
    parse_gradle,
    parse_pom,
    pom_group,
)

MAVEN_SEARCH_URL = "https://search.maven.org/solrsearch/select?q=fc:{query}&rows=1&wt=json"
MISSING_BUILD_FILE = "No build file found"
GROUP_ROOT_SEGMENTS = 2

BUILTIN_PACKAGES = (
    "java",
    "javax",
    "jdk",
    "sun",
    "com.sun",
    "org.w3c",
    "org.xml",
    "org.ietf",
    "org.omg",
    "kotlin",
    "android",
)

_IMPORT = re.compile(
    r"^[ \t]*import[ \t]+(?:static[ \t]+)?([A-Za-z_][\w.]*?)(?:\.\*)?(?:[ \t]+as[ \t]+\w+)?[ \t]*;?[ \t]*$",
    re.MULTILINE,
)
_PACKAGE = re.compile(r"^[ \t]*package[ \t]+([A-Za-z_][\w.]*)[ \t]*;?", re.MULTILINE)


def _has_prefix(name: str, prefix: str) -> bool:
    return name == prefix or name.startswith(prefix + ".")


def _group_root(group: str) -> str:
    # Artifacts often publish packages outside their groupId, e.g.
    # com.google.guava ships com.google.common.
    return ".".join(group.split(".")[:GROUP_ROOT_SEGMENTS])


class JavaResolver:
    manifest_names = ("pom.xml", "build.gradle", "build.gradle.kts")

    def __init__(
        self,
        *,
        installer: PackageInstaller | None = None,
        fetch: JsonFetcher | None = None,
        max_lookups: int = 10,
    ) -> None:
        self.installer = installer or PackageInstaller()
        self._fetch = fetch or fetch_json
        self.max_lookups = max_lookups
        self.logger = get_logger("resolvers.java")

    def extract_manifest_context(
        self, base_prompt: str, *, target_path: Path, workspace_root: Path
    ) -> ManifestContext:
        location = find_manifest(target_path, workspace_root, self.manifest_names)
        return manifest_context(
            base_prompt, location, MANIFEST_PLACEHOLDER, missing_text=MISSING_BUILD_FILE
        )

    def parse_manifest(self, location: Path, text: str) -> DependencyManifest:
        if location.name == "pom.xml":
            return DependencyManifest(
                name=pom_group(text), path=location, declared=parse_pom(text)
            )
        return DependencyManifest(
            name=gradle_group(text), path=location, declared=parse_gradle(text)
        )

    def used_identifiers(self, code: str) -> Set[str]:
        imports: Set[str] = set()
        for match in _IMPORT.finditer(code):
            name = match.group(1).rstrip(".")
            if not any(_has_prefix(name, prefix) for prefix in BUILTIN_PACKAGES):
                imports.add(name)
        return imports

    def reconcile_dependencies(
        self, location: Optional[Path], text: str, generated_code: str
    ) -> ReconcileReport:
        report = ReconcileReport(used=self.used_identifiers(generated_code))
        if location is None or not text:
            self.logger.debug("No build file found; skipping dependency lookup")
            return report
        try:
            manifest = self.parse_manifest(location, text)
        except ManifestParseError as exc:
            self.logger.error("%s", exc)
            self.installer.warn(
                f"Could not parse {location.name}; dependency lookup skipped.", report
            )
            return report

        prefixes: List[str] = []
        for coordinate in manifest.declared:
            group = coordinate.split(":")[0]
            prefixes.extend((group, _group_root(group)))
        if manifest.name:
            prefixes.append(manifest.name)
        own_package = _PACKAGE.search(generated_code)
        if own_package:
            prefixes.append(".".join(own_package.group(1).split(".")[:2]))

        report.missing = sorted(
            name
            for name in report.used
            if not any(_has_prefix(name, prefix) for prefix in prefixes)
        )
        if not report.missing:
            return report

        results = [self.lookup(name) for name in report.missing[: self.max_lookups]]
        tool = "pom.xml" if location.name == "pom.xml" else location.name
        self.installer.suggest(f"Add to {tool}:\n" + "\n".join(results), report)
        return report

    def lookup(self, import_name: str) -> str:
        """Return ``group:artifact:version`` for a class, or a note explaining why not."""
        url = MAVEN_SEARCH_URL.format(query=import_name)
        try:
            payload = self._fetch(url, self.installer.timeout)
        except DependencyInstallError as exc:
            self.logger.error("Maven Central lookup failed for %s: %s", import_name, exc)
            return f"{import_name} (lookup error)"
        docs = []
        if isinstance(payload, dict):
            response = payload.get("response")
            if isinstance(response, dict) and isinstance(response.get("docs"), list):
                docs = response["docs"]
        if not docs or not isinstance(docs[0], dict):
            return f"{import_name} (not found in Maven Central)"
        doc = docs[0]
        version = doc.get("latestVersion") or doc.get("v") or "LATEST"
        return f"{doc.get('g')}:{doc.get('a')}:{version}"


__all__ = ["BUILTIN_PACKAGES", "JavaResolver", "MAVEN_SEARCH_URL", "MISSING_BUILD_FILE"]
