"""Persistent stores used by shadowsync."""

from .checkpoints import CheckpointStore

__all__ = ["CheckpointStore"]
