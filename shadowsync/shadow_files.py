"""Mapping between target files and their shadow pseudocode files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .config import CONFIG_FILENAME, ShadowConfig
from .logging import get_logger
from .stores.checkpoints import CheckpointStore

logger = get_logger("shadow_files")


@dataclass
class OpenResult:
    shadow_path: Path
    created: bool


def shadow_path_for(target: Path, root: Path, config: ShadowConfig | None = None) -> Path:
    """Return ``<root>/<directory>/<relative target><suffix>`` for a target file."""
    config = config or ShadowConfig()
    root = Path(root).resolve()
    target = Path(target).resolve()
    if is_shadow_path(target, root, config):
        raise ValueError(f"{target} is already a shadow file")
    try:
        relative = target.relative_to(root)
    except ValueError as exc:
        raise ValueError(f"{target} is not inside the workspace {root}") from exc
    return root / config.directory / relative.parent / f"{relative.name}{config.suffix}"


def target_path_for(shadow: Path, root: Path, config: ShadowConfig | None = None) -> Path:
    """Inverse of :func:`shadow_path_for`."""
    config = config or ShadowConfig()
    root = Path(root).resolve()
    shadow = Path(shadow).resolve()
    if not is_shadow_path(shadow, root, config):
        raise ValueError(f"{shadow} is not a shadow file under {root / config.directory}")
    relative = shadow.relative_to(root / config.directory)
    return root / relative.parent / relative.name[: -len(config.suffix)]


def is_shadow_path(path: Path, root: Path, config: ShadowConfig | None = None) -> bool:
    config = config or ShadowConfig()
    path = Path(path).resolve()
    shadow_root = Path(root).resolve() / config.directory
    return (
        path.name.endswith(config.suffix)
        and len(path.name) > len(config.suffix)
        and path.is_relative_to(shadow_root)
    )


def language_tag_for(target: Path) -> str:
    """Return the target extension without the leading dot, case preserved."""
    return Path(target).suffix[1:]


def iter_shadow_files(root: Path, config: ShadowConfig | None = None) -> Iterator[Path]:
    config = config or ShadowConfig()
    shadow_root = Path(root).resolve() / config.directory
    if not shadow_root.is_dir():
        return
    for path in sorted(shadow_root.rglob(f"*{config.suffix}")):
        if path.is_file() and len(path.name) > len(config.suffix):
            yield path


def open_shadow(
    target: Path,
    root: Path,
    store: CheckpointStore,
    config: ShadowConfig | None = None,
) -> OpenResult:
    """Create the shadow file for ``target``, seeded with the target's code.

    An existing shadow file is left untouched. A new one starts as a clone of
    the target and its checkpoint is set to that content, so the first
    conversion only sends what the user changes.
    """
    target = Path(target).resolve()
    shadow = shadow_path_for(target, root, config)
    if shadow.exists():
        logger.info("Shadow file already exists: %s", shadow)
        return OpenResult(shadow_path=shadow, created=False)

    seed = target.read_text(encoding="utf-8") if target.exists() else ""
    shadow.parent.mkdir(parents=True, exist_ok=True)
    shadow.write_text(seed, encoding="utf-8")
    store.set(str(shadow), seed)
    store.persist()
    logger.info("New shadow file created: %s", shadow)
    return OpenResult(shadow_path=shadow, created=True)


def copy_target_into_shadow(
    shadow: Path,
    root: Path,
    store: CheckpointStore,
    config: ShadowConfig | None = None,
) -> str:
    """Overwrite a shadow file with its target's code and reset the checkpoint."""
    shadow = Path(shadow).resolve()
    target = target_path_for(shadow, root, config)
    code = target.read_text(encoding="utf-8")
    shadow.parent.mkdir(parents=True, exist_ok=True)
    shadow.write_text(code, encoding="utf-8")
    store.set(str(shadow), code)
    store.persist()
    return code


def workspace_root_for(path: Path) -> Path:
    """Best-effort workspace root: the nearest ancestor holding a config file or VCS dir."""
    current = Path(path).resolve()
    if current.is_file() or not current.exists():
        current = current.parent
    for candidate in (current, *current.parents):
        if (candidate / CONFIG_FILENAME).exists() or (candidate / ".git").exists():
            return candidate
    return Path.cwd().resolve()


__all__ = [
    "OpenResult",
    "copy_target_into_shadow",
    "is_shadow_path",
    "iter_shadow_files",
    "language_tag_for",
    "open_shadow",
    "shadow_path_for",
    "target_path_for",
    "workspace_root_for",
]
