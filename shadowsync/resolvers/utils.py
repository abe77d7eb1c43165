"""Shared helpers for dependency resolver implementations."""

from __future__ import annotations

import json
import os
import re
import subprocess
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set
from urllib.request import Request, urlopen

from ..errors import DependencyInstallError, ManifestParseError
from ..logging import get_logger
from ..notify import Notifier
from .base import ManifestContext, ReconcileReport

logger = get_logger("resolvers")

EXCLUDED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".shadows",
        ".shadowsync",
        ".venv",
        "venv",
        "__pycache__",
        "node_modules",
        "target",
        "build",
        "dist",
        "out",
        "vendor",
        ".dart_tool",
        ".gradle",
        ".idea",
    }
)

InstallRunner = Callable[..., str]
JsonFetcher = Callable[[str, float], Any]


# Manifest discovery


def find_manifest(
    target_path: Path,
    workspace_root: Path,
    names: Sequence[str],
    *,
    exclude: Iterable[str] = EXCLUDED_DIRS,
) -> Optional[Path]:
    """Return the nearest manifest above ``target_path``, else the first one in the workspace."""
    root = Path(workspace_root).resolve()
    directory = Path(target_path).resolve().parent
    if directory.is_relative_to(root):
        for candidate_dir in (directory, *directory.parents):
            for name in names:
                candidate = candidate_dir / name
                if candidate.is_file():
                    return candidate
            if candidate_dir == root:
                break

    excluded = set(exclude)
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for name in names:
            if name in filenames:
                return Path(current) / name
    return None


def manifest_context(
    base_prompt: str,
    location: Optional[Path],
    placeholder: str,
    *,
    missing_text: str = "",
) -> ManifestContext:
    """Substitute the manifest text for ``placeholder`` in ``base_prompt``."""
    if location is None:
        return ManifestContext(prompt=base_prompt.replace(placeholder, missing_text))
    try:
        text = location.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read manifest %s: %s", location, exc)
        return ManifestContext(prompt=base_prompt.replace(placeholder, missing_text))
    return ManifestContext(
        prompt=base_prompt.replace(placeholder, text), location=location, text=text
    )


# Installation


def default_install_runner(args: Sequence[str], *, cwd: Path, timeout: float) -> str:
    completed = subprocess.run(
        list(args),
        cwd=str(cwd),
        check=True,
        text=True,
        capture_output=True,
        timeout=timeout,
    )
    return completed.stdout


class PackageInstaller:
    """Runs package-manager commands and records the outcome on a report."""

    def __init__(
        self,
        runner: InstallRunner | None = None,
        *,
        notifier: Notifier | None = None,
        enabled: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._runner = runner or default_install_runner
        self.notifier = notifier or Notifier()
        self.enabled = enabled
        self.timeout = timeout

    def run(self, args: Sequence[str], *, cwd: Path) -> str:
        try:
            return self._runner(list(args), cwd=cwd, timeout=self.timeout)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip() or f"exit status {exc.returncode}"
            raise DependencyInstallError(f"{' '.join(args)} failed: {detail}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DependencyInstallError(
                f"{' '.join(args)} timed out after {self.timeout:g}s"
            ) from exc
        except OSError as exc:
            raise DependencyInstallError(f"Could not run {args[0]}: {exc}") from exc

    def install(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        packages: Sequence[str],
        report: ReconcileReport,
    ) -> bool:
        command = " ".join(args)
        if not self.enabled:
            self.suggest(f"Run `{command}` in {cwd}", report)
            return False
        try:
            self.run(args, cwd=cwd)
        except DependencyInstallError as exc:
            logger.error("Failed to install dependencies: %s", exc)
            report.warnings.append(str(exc))
            self.notifier.warning(
                "Failed to install some dependencies. Check the log for details."
            )
            return False
        report.installed.extend(packages)
        self.notifier.info(f"Installed {len(packages)} missing dependencies: {', '.join(packages)}")
        return True

    def suggest(self, message: str, report: ReconcileReport) -> None:
        report.suggestions.append(message)
        self.notifier.info(message)

    def warn(self, message: str, report: ReconcileReport) -> None:
        report.warnings.append(message)
        self.notifier.warning(message)


def fetch_json(url: str, timeout: float) -> Any:
    request = Request(url, headers={"Accept": "application/json"})
    try:
        with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
            return json.loads(response.read().decode("utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise DependencyInstallError(f"Lookup failed for {url}: {exc}") from exc


# Python manifests

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._\-]*)")


def parse_requirements(text: str) -> Set[str]:
    packages: Set[str] = set()
    for line in text.splitlines():
        stripped = line.split("#", 1)[0].strip()
        if not stripped or stripped.startswith("-"):
            continue
        match = _REQUIREMENT_NAME.match(stripped)
        if match:
            packages.add(match.group(1))
    return packages


def parse_toml(text: str, filename: str) -> Dict[str, Any]:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestParseError(f"Could not parse {filename}: {exc}") from exc


def requirement_name(spec: str) -> Optional[str]:
    match = _REQUIREMENT_NAME.match(spec)
    return match.group(1) if match else None


def normalize_distribution(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


# Node manifests


def detect_node_package_manager(directory: Path) -> str:
    """Infer the preferred Node package manager based on lockfiles."""
    if (directory / "pnpm-lock.yaml").exists():
        return "pnpm"
    if (directory / "yarn.lock").exists():
        return "yarn"
    if (directory / "bun.lockb").exists() or (directory / "bun.lock").exists():
        return "bun"
    return "npm"


def node_install_command(manager: str, packages: Sequence[str]) -> List[str]:
    if manager == "npm":
        return ["npm", "install", *packages]
    return [manager, "add", *packages]


# Java manifests


def parse_pom(text: str) -> Set[str]:
    """Return ``group:artifact`` coordinates declared in a pom.xml."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ManifestParseError(f"Could not parse pom.xml: {exc}") from exc

    namespace = _detect_xml_namespace(root)
    prefix = f"{{{namespace}}}" if namespace else ""
    deps: Set[str] = set()
    for dep in root.iter(f"{prefix}dependency"):
        group = (dep.findtext(f"{prefix}groupId") or "").strip()
        artifact = (dep.findtext(f"{prefix}artifactId") or "").strip()
        if group and artifact:
            deps.add(f"{group}:{artifact}")
    return deps


def pom_group(text: str) -> Optional[str]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return None
    namespace = _detect_xml_namespace(root)
    prefix = f"{{{namespace}}}" if namespace else ""
    group = root.findtext(f"{prefix}groupId")
    return group.strip() if group else None


def _detect_xml_namespace(element: ET.Element) -> str | None:
    match = re.match(r"\{(.+)}", element.tag)
    return match.group(1) if match else None


_GRADLE_CONFIGURATIONS = (
    "implementation",
    "api",
    "compile",
    "compileOnly",
    "runtimeOnly",
    "testImplementation",
    "annotationProcessor",
    "kapt",
)
_GRADLE_COORDINATE = re.compile(r"['\"]([\w\-.]+):([\w\-.]+)(?::[^'\"]*)?['\"]")
_GRADLE_NAMED = re.compile(r"group\s*[:=]\s*['\"]([\w\-.]+)['\"]\s*,\s*name\s*[:=]\s*['\"]([\w\-.]+)['\"]")
_GRADLE_GROUP = re.compile(r"^\s*group\s*=\s*['\"]([\w\-.]+)['\"]", re.MULTILINE)


def parse_gradle(text: str) -> Set[str]:
    """Return ``group:artifact`` coordinates declared in a Gradle build script."""
    deps: Set[str] = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("//"):
            continue
        if not any(line.startswith(config) for config in _GRADLE_CONFIGURATIONS):
            continue
        for match in _GRADLE_COORDINATE.finditer(line):
            deps.add(f"{match.group(1)}:{match.group(2)}")
        for match in _GRADLE_NAMED.finditer(line):
            deps.add(f"{match.group(1)}:{match.group(2)}")
    return deps


def gradle_group(text: str) -> Optional[str]:
    match = _GRADLE_GROUP.search(text)
    return match.group(1) if match else None


__all__ = [
    "EXCLUDED_DIRS",
    "PackageInstaller",
    "default_install_runner",
    "detect_node_package_manager",
    "fetch_json",
    "find_manifest",
    "gradle_group",
    "manifest_context",
    "node_install_command",
    "normalize_distribution",
    "parse_gradle",
    "parse_pom",
    "parse_requirements",
    "parse_toml",
    "pom_group",
    "requirement_name",
]
