"""Polling change source for shadow files."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .logging import get_logger

Snapshot = Optional[Tuple[int, int]]


def _snapshot(path: Path) -> Snapshot:
    try:
        stat = path.stat()
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size


class PollingWatcher:
    """Reports a file as changed when its mtime or size differs from the last poll."""

    def __init__(self, interval: float = 0.5) -> None:
        self.interval = interval
        self._callbacks: Dict[Path, List[Callable[[], None]]] = {}
        self._snapshots: Dict[Path, Snapshot] = {}
        self.logger = get_logger("watch")

    def subscribe(self, path: Path, callback: Callable[[], None]) -> Callable[[], None]:
        key = Path(path).resolve()
        self._callbacks.setdefault(key, []).append(callback)
        self._snapshots.setdefault(key, _snapshot(key))

        def unsubscribe() -> None:
            callbacks = self._callbacks.get(key)
            if callbacks is None:
                return
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                del self._callbacks[key]
                self._snapshots.pop(key, None)

        return unsubscribe

    @property
    def paths(self) -> List[Path]:
        return list(self._callbacks)

    def poll(self) -> List[Path]:
        """Check every subscribed path once and fire callbacks for changed ones."""
        changed: List[Path] = []
        for path in list(self._callbacks):
            current = _snapshot(path)
            if current == self._snapshots.get(path):
                continue
            self._snapshots[path] = current
            if current is None:
                self.logger.debug("%s disappeared", path)
                continue
            changed.append(path)
            for callback in list(self._callbacks.get(path, [])):
                callback()
        return changed


__all__ = ["PollingWatcher"]
