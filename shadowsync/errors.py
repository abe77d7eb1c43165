"""Exception types shared across shadowsync components."""

from __future__ import annotations


class ShadowSyncError(RuntimeError):
    """Base class for errors raised by shadowsync."""


class ConfigurationError(ShadowSyncError):
    """Raised when no usable model, credential or configuration is available.

    Surfaced to the user immediately and never retried.
    """


class GenerationError(ShadowSyncError):
    """Raised when the generation provider fails or blocks a response.

    Transient: the checkpoint stays put and the next pseudocode change retries.
    """


class ManifestParseError(ShadowSyncError):
    """Raised when a dependency manifest cannot be parsed."""


class DependencyInstallError(ShadowSyncError):
    """Raised when a package manager invocation fails."""


__all__ = [
    "ConfigurationError",
    "DependencyInstallError",
    "GenerationError",
    "ManifestParseError",
    "ShadowSyncError",
]
