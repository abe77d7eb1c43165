"""Configuration loading for shadowsync (.shadowsync.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigurationError

CONFIG_FILENAME = ".shadowsync.yml"

DEFAULT_DIRECTIVES: tuple[str, ...] = ("use", "import", "context")


class ConfigError(ConfigurationError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LLMConfig:
    """Model provider settings from .shadowsync.yml."""

    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    request_timeout: Optional[float] = None
    stream: bool = True


@dataclass
class SchedulerConfig:
    """Debounce and polling cadence for realtime generation."""

    debounce_seconds: float = 2.0
    poll_interval: float = 0.5


@dataclass
class ShadowConfig:
    """Where shadow files live relative to the workspace root."""

    directory: str = ".shadows"
    suffix: str = ".shadow"


@dataclass
class DependencyConfig:
    """Dependency reconciliation behaviour."""

    enabled: bool = True
    auto_install: bool = True
    install_timeout: float = 30.0


@dataclass
class ShadowSyncConfig:
    """Represents the high-level settings defined in .shadowsync.yml."""

    root: Path
    llm: LLMConfig = field(default_factory=LLMConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    shadow: ShadowConfig = field(default_factory=ShadowConfig)
    dependencies: DependencyConfig = field(default_factory=DependencyConfig)
    directives: List[str] = field(default_factory=lambda: list(DEFAULT_DIRECTIVES))
    templates_dir: Optional[Path] = None
    checkpoints_path: Optional[Path] = None

    def resolved_checkpoints_path(self) -> Path:
        if self.checkpoints_path is not None:
            return self.checkpoints_path
        return self.root / ".shadowsync" / "checkpoints.json"


def load_config(config_path: Path) -> ShadowSyncConfig:
    """Load configuration from disk, returning defaults when the file is absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ShadowSyncConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    llm = LLMConfig()
    llm_data = _as_dict(data.get("llm"))
    if llm_data:
        llm.model = _as_str(llm_data.get("model"))
        llm.base_url = _as_str(llm_data.get("base_url"))
        llm.api_key = _as_str(llm_data.get("api_key"))
        llm.temperature = _as_float(llm_data.get("temperature"))
        llm.max_tokens = _as_int(llm_data.get("max_tokens"))
        llm.request_timeout = _as_float(llm_data.get("request_timeout"))
        stream = _as_bool(llm_data.get("stream"))
        if stream is not None:
            llm.stream = stream

    scheduler = SchedulerConfig()
    scheduler_data = _as_dict(data.get("scheduler"))
    if scheduler_data:
        debounce = _as_float(scheduler_data.get("debounce_seconds"))
        if debounce is not None:
            if debounce < 0:
                raise ConfigError("scheduler.debounce_seconds must not be negative")
            scheduler.debounce_seconds = debounce
        poll = _as_float(scheduler_data.get("poll_interval"))
        if poll is not None:
            if poll <= 0:
                raise ConfigError("scheduler.poll_interval must be positive")
            scheduler.poll_interval = poll

    shadow = ShadowConfig()
    shadow_data = _as_dict(data.get("shadow"))
    if shadow_data:
        directory = _as_str(shadow_data.get("directory"))
        if directory:
            shadow.directory = directory.strip("/\\") or shadow.directory
        suffix = _as_str(shadow_data.get("suffix"))
        if suffix:
            shadow.suffix = suffix if suffix.startswith(".") else f".{suffix}"

    dependencies = DependencyConfig()
    dependency_data = _as_dict(data.get("dependencies"))
    if dependency_data:
        enabled = _as_bool(dependency_data.get("enabled"))
        if enabled is not None:
            dependencies.enabled = enabled
        auto_install = _as_bool(dependency_data.get("auto_install"))
        if auto_install is not None:
            dependencies.auto_install = auto_install
        timeout = _as_float(dependency_data.get("install_timeout"))
        if timeout is not None:
            dependencies.install_timeout = timeout

    directives = _as_str_list(data.get("directives")) or list(DEFAULT_DIRECTIVES)

    prompts_data = _as_dict(data.get("prompts"))
    templates_dir_str = _as_str(prompts_data.get("templates_dir")) if prompts_data else None
    templates_dir = root / templates_dir_str if templates_dir_str else None

    checkpoints_data = _as_dict(data.get("checkpoints"))
    checkpoints_str = _as_str(checkpoints_data.get("path")) if checkpoints_data else None
    checkpoints_path = root / checkpoints_str if checkpoints_str else None

    return ShadowSyncConfig(
        root=root,
        llm=llm,
        scheduler=scheduler,
        shadow=shadow,
        dependencies=dependencies,
        directives=directives,
        templates_dir=templates_dir,
        checkpoints_path=checkpoints_path,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DEFAULT_DIRECTIVES",
    "DependencyConfig",
    "LLMConfig",
    "SchedulerConfig",
    "ShadowConfig",
    "ShadowSyncConfig",
    "load_config",
]
