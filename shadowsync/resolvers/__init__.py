"""Per-language dependency resolvers and their lookup table."""

from __future__ import annotations

from importlib import metadata
from typing import Any, Callable, Dict, Iterable

from ..logging import get_logger
from .base import DependencyResolver, ManifestContext, ReconcileReport
from .dart import DartResolver
from .default import DefaultResolver
from .java import JavaResolver
from .node import NodeResolver
from .python import PythonResolver
from .rust import RustResolver
from .utils import PackageInstaller

_ENTRY_POINT_GROUP = "shadowsync.resolvers"

ResolverFactory = Callable[..., DependencyResolver]

_BUILTIN_FACTORIES: Dict[str, ResolverFactory] = {
    "rs": RustResolver,
    "py": PythonResolver,
    "ts": NodeResolver,
    "tsx": NodeResolver,
    "js": NodeResolver,
    "jsx": NodeResolver,
    "mjs": NodeResolver,
    "cjs": NodeResolver,
    "dart": DartResolver,
    "java": JavaResolver,
    "kt": JavaResolver,
}

logger = get_logger("resolvers")


def get_resolver(language_tag: str, **options: Any) -> DependencyResolver:
    """Return the resolver for a target extension, falling back to the no-op default.

    Lookup is case-sensitive. Built-in variants win over entry points
    registered under ``shadowsync.resolvers`` for the same tag.
    """
    factory = _BUILTIN_FACTORIES.get(language_tag)
    if factory is None:
        factory = _entry_point_factories().get(language_tag)
    if factory is None:
        return DefaultResolver()
    instance = factory(**options)
    if not isinstance(instance, DependencyResolver):
        raise TypeError(f"Resolver factory for '{language_tag}' did not return a DependencyResolver")
    return instance


def supported_tags() -> list[str]:
    return sorted(set(_BUILTIN_FACTORIES) | set(_entry_point_factories()))


def _entry_point_factories() -> Dict[str, ResolverFactory]:
    factories: Dict[str, ResolverFactory] = {}
    for entry in _iter_entry_points():
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover
            raise RuntimeError(f"Failed to load resolver entry point '{entry.name}': {exc}") from exc
        if callable(loaded):
            factories[entry.name] = loaded
        else:
            logger.warning("Ignoring resolver entry point '%s': not callable", entry.name)
    return factories


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    try:
        entry_points = metadata.entry_points()
    except Exception:  # pragma: no cover
        return []
    return entry_points.select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "DartResolver",
    "DefaultResolver",
    "DependencyResolver",
    "JavaResolver",
    "ManifestContext",
    "NodeResolver",
    "PackageInstaller",
    "PythonResolver",
    "ReconcileReport",
    "RustResolver",
    "get_resolver",
    "supported_tags",
]
