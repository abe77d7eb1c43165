"""Python dependency resolver for pyproject.toml and requirements.txt projects."""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from ..errors import ManifestParseError
from ..logging import get_logger
from ..models import DependencyManifest
from ..prompting.constants import MANIFEST_PLACEHOLDER
from .base import ManifestContext, ReconcileReport
from .utils import (
    PackageInstaller,
    find_manifest,
    manifest_context,
    normalize_distribution,
    parse_requirements,
    parse_toml,
    requirement_name,
)

STDLIB_MODULES = frozenset(sys.stdlib_module_names) | {"__future__"}

# Import names whose distribution is published under a different name.
IMPORT_ALIASES: Dict[str, str] = {
    "yaml": "PyYAML",
    "PIL": "Pillow",
    "cv2": "opencv-python",
    "sklearn": "scikit-learn",
    "skimage": "scikit-image",
    "bs4": "beautifulsoup4",
    "dateutil": "python-dateutil",
    "dotenv": "python-dotenv",
    "jwt": "PyJWT",
    "serial": "pyserial",
    "usb": "pyusb",
    "Crypto": "pycryptodome",
    "OpenSSL": "pyOpenSSL",
    "magic": "python-magic",
    "docx": "python-docx",
    "pptx": "python-pptx",
    "git": "GitPython",
    "google": "protobuf",
    "attr": "attrs",
    "zmq": "pyzmq",
    "MySQLdb": "mysqlclient",
    "psycopg2": "psycopg2-binary",
    "win32api": "pywin32",
    "fitz": "PyMuPDF",
    "multipart": "python-multipart",
    "jose": "python-jose",
    "slugify": "python-slugify",
    "tomli_w": "tomli-w",
}

_IMPORT = re.compile(r"^[ \t]*import[ \t]+([^\n#;]+)", re.MULTILINE)
_FROM_IMPORT = re.compile(r"^[ \t]*from[ \t]+([\w.]+)[ \t]+import\b", re.MULTILINE)


def distribution_for(module: str) -> str:
    return IMPORT_ALIASES.get(module, module)


class PythonResolver:
    """Reads pyproject.toml/requirements.txt and adds missing distributions.

    Poetry, uv and PDM projects get the tool's ``add`` command. Anything else
    gets a ``pip install`` suggestion, since editing a bare requirements file or
    a hand-maintained ``[project]`` table is left to the user.
    """

    manifest_names = ("pyproject.toml", "requirements.txt")

    def __init__(self, *, installer: PackageInstaller | None = None) -> None:
        self.installer = installer or PackageInstaller()
        self.logger = get_logger("resolvers.python")

    def extract_manifest_context(
        self, base_prompt: str, *, target_path: Path, workspace_root: Path
    ) -> ManifestContext:
        location = find_manifest(target_path, workspace_root, self.manifest_names)
        return manifest_context(base_prompt, location, MANIFEST_PLACEHOLDER)

    def parse_manifest(
        self, location: Path, text: str, *, sibling_requirements: str = ""
    ) -> DependencyManifest:
        if location.name == "requirements.txt":
            return DependencyManifest(
                name=None, path=location, declared=parse_requirements(text)
            )

        data = parse_toml(text, location.name)
        project = _as_dict(data.get("project"))
        tool = _as_dict(data.get("tool"))
        poetry = _as_dict(tool.get("poetry"))

        declared: Set[str] = set(_requirement_names(project.get("dependencies")))
        declared.update(name for name in _as_dict(poetry.get("dependencies")) if name != "python")

        scopes: Dict[str, Set[str]] = {"optional": set(), "dev": set()}
        for values in _as_dict(project.get("optional-dependencies")).values():
            scopes["optional"].update(_requirement_names(values))
        for values in _as_dict(data.get("dependency-groups")).values():
            scopes["dev"].update(_requirement_names(values))
        scopes["dev"].update(_as_dict(poetry.get("dev-dependencies")))
        for group in _as_dict(poetry.get("group")).values():
            scopes["dev"].update(_as_dict(_as_dict(group).get("dependencies")))
        scopes["dev"].update(_requirement_names(_as_dict(tool.get("uv")).get("dev-dependencies")))
        for values in _as_dict(_as_dict(tool.get("pdm")).get("dev-dependencies")).values():
            scopes["dev"].update(_requirement_names(values))

        declared.update(parse_requirements(sibling_requirements))

        name = project.get("name") or poetry.get("name")
        return DependencyManifest(
            name=str(name) if name else None,
            path=location,
            declared=declared,
            scopes=scopes,
        )

    def used_identifiers(self, code: str) -> Set[str]:
        code = code.replace("\\\n", " ")
        modules: Set[str] = set()
        for match in _IMPORT.finditer(code):
            for part in match.group(1).split(","):
                head = part.strip().strip("()").split(" ")[0].split(".")[0]
                if head.isidentifier():
                    modules.add(head)
        for match in _FROM_IMPORT.finditer(code):
            module = match.group(1)
            if not module.startswith("."):
                modules.add(module.split(".")[0])
        return modules

    def local_modules(self, project_dir: Path) -> Set[str]:
        """Top-level modules and packages that live in the project tree."""
        names: Set[str] = set()
        for base in (project_dir, project_dir / "src"):
            if not base.is_dir():
                continue
            for child in base.iterdir():
                if child.is_dir() and (child / "__init__.py").exists():
                    names.add(child.name)
                elif child.suffix == ".py":
                    names.add(child.stem)
        return names

    def _sibling_requirements(self, location: Path, report: ReconcileReport) -> str:
        """Text of a requirements.txt next to pyproject.toml, or an empty string."""
        requirements = location.with_name("requirements.txt")
        if location.name == requirements.name or not requirements.is_file():
            return ""
        try:
            return requirements.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning("Failed to read %s: %s", requirements, exc)
            self.installer.warn(
                f"Could not read {requirements.name}; its dependencies were not checked.",
                report,
            )
            return ""

    def reconcile_dependencies(
        self, location: Optional[Path], text: str, generated_code: str
    ) -> ReconcileReport:
        report = ReconcileReport(used=self.used_identifiers(generated_code))
        if location is None:
            self.logger.debug("No Python manifest found; skipping dependency reconciliation")
            return report
        sibling = self._sibling_requirements(location, report)
        try:
            manifest = self.parse_manifest(location, text, sibling_requirements=sibling)
        except ManifestParseError as exc:
            self.logger.error("%s", exc)
            self.installer.warn(
                f"Could not parse {location.name}; dependency auto-install skipped.", report
            )
            return report

        declared = {normalize_distribution(name) for name in manifest.all_declared()}
        own = self.local_modules(location.parent)
        report.missing = sorted(
            module
            for module in report.used
            if module not in STDLIB_MODULES
            and module not in own
            and normalize_distribution(distribution_for(module)) not in declared
            and normalize_distribution(module) not in declared
        )
        if not report.missing:
            return report

        packages = [distribution_for(module) for module in report.missing]
        command = self._install_command(location, text)
        if command is None:
            self.installer.suggest(
                f"Missing Python dependencies, run: pip install {' '.join(packages)}"
                f" and declare them in {location.name}",
                report,
            )
            return report
        self.installer.install(
            [*command, *packages], cwd=location.parent, packages=packages, report=report
        )
        return report

    @staticmethod
    def _install_command(location: Path, text: str) -> Optional[List[str]]:
        if location.name != "pyproject.toml":
            return None
        tool = _as_dict(parse_toml(text, location.name).get("tool"))
        directory = location.parent
        if "poetry" in tool or (directory / "poetry.lock").exists():
            return ["poetry", "add"]
        if "uv" in tool or (directory / "uv.lock").exists():
            return ["uv", "add"]
        if "pdm" in tool or (directory / "pdm.lock").exists():
            return ["pdm", "add"]
        return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _requirement_names(values: Any) -> Iterable[str]:
    if not isinstance(values, list):
        return []
    names = []
    for value in values:
        if isinstance(value, str):
            name = requirement_name(value)
            if name:
                names.append(name)
    return names


__all__ = ["IMPORT_ALIASES", "PythonResolver", "STDLIB_MODULES", "distribution_for"]
