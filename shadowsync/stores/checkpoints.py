"""Persistent store of the last successfully converted pseudocode per shadow file."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..logging import get_logger

_STORE_VERSION = 1

Entry = Dict[str, str]


class CheckpointStore:
    """Maps shadow-file identities to their last converted pseudocode.

    Several processes may share one store file (``shadowsync open`` while a
    watcher runs), so ``persist`` re-reads the file and writes back only the
    keys this instance changed, and ``get`` checks the file for ids it has
    not seen yet.
    """

    def __init__(self, path: Path | None) -> None:
        self._path = path
        self._entries: Dict[str, Entry] = {}
        # Keys set or removed since the last persist; None marks a removal.
        self._changes: Dict[str, Optional[Entry]] = {}
        self._logger = get_logger("checkpoints")
        if self._path is not None:
            self._entries = self._read(self._path)

    @property
    def path(self) -> Path | None:
        return self._path

    def get(self, shadow_id: str) -> Optional[str]:
        entry = self._entries.get(shadow_id)
        if entry is None and shadow_id not in self._changes:
            entry = self._refresh(shadow_id)
        if not entry:
            return None
        text = entry.get("text")
        return text if isinstance(text, str) else None

    def set(self, shadow_id: str, text: str) -> None:
        entry = {
            "text": text,
            "updated_at": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        }
        self._entries[shadow_id] = entry
        self._changes[shadow_id] = entry

    def remove(self, shadow_id: str) -> None:
        self._entries.pop(shadow_id, None)
        self._changes[shadow_id] = None

    def list_ids(self) -> List[str]:
        return list(self._entries)

    def cleanup_ghosts(
        self, exists: Callable[[Path], bool] | None = None
    ) -> List[str]:
        """Drop checkpoints whose shadow file is confirmed absent.

        Entries written while the sweep runs are left alone; only ids whose file
        is missing at removal time are dropped.
        """
        check = exists or _path_exists
        removed: List[str] = []
        for shadow_id in list(self._entries):
            if shadow_id not in self._entries or check(Path(shadow_id)):
                continue
            self.remove(shadow_id)
            removed.append(shadow_id)
            self._logger.debug("Cleaned up ghost checkpoint: %s", shadow_id)
        return removed

    def persist(self) -> None:
        """Merge this store's changes into the file on disk."""
        if not self._changes or self._path is None:
            return
        merged = self._read(self._path)
        for shadow_id, entry in self._changes.items():
            if entry is None:
                merged.pop(shadow_id, None)
            else:
                merged[shadow_id] = entry
        payload = {
            "version": _STORE_VERSION,
            "entries": merged,
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
        )
        self._entries = merged
        self._changes.clear()

    def clear(self) -> None:
        for shadow_id in self._entries:
            self._changes[shadow_id] = None
        self._entries.clear()

    # ------------------------------------------------------------------
    # Internal helpers

    def _refresh(self, shadow_id: str) -> Optional[Entry]:
        if self._path is None:
            return None
        entry = self._read(self._path).get(shadow_id)
        if entry is not None:
            self._entries[shadow_id] = entry
        return entry

    def _read(self, path: Path) -> Dict[str, Entry]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            self._logger.warning("Ignoring unreadable checkpoint store %s: %s", path, exc)
            return {}
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            return {}
        entries = data.get("entries")
        if not isinstance(entries, dict):
            return {}
        valid_entries: Dict[str, Entry] = {}
        for key, raw in entries.items():
            if not isinstance(key, str) or not isinstance(raw, dict):
                continue
            if not isinstance(raw.get("text"), str):
                continue
            valid_entries[key] = raw
        return valid_entries


def _path_exists(path: Path) -> bool:
    return path.exists()


__all__ = ["CheckpointStore"]
