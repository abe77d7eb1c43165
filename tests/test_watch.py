from __future__ import annotations

import os

from shadowsync.watch import PollingWatcher


def _touch(path, text: str) -> None:
    path.write_text(text, encoding="utf-8")
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))


def test_poll_fires_callbacks_for_changed_files(tmp_path) -> None:
    path = tmp_path / "a.py.shadow"
    path.write_text("one", encoding="utf-8")
    watcher = PollingWatcher()
    fired = []
    watcher.subscribe(path, lambda: fired.append("a"))

    assert watcher.poll() == []

    _touch(path, "two")

    assert watcher.poll() == [path.resolve()]
    assert fired == ["a"]
    assert watcher.poll() == []


def test_unsubscribe_stops_notifications(tmp_path) -> None:
    path = tmp_path / "a.py.shadow"
    path.write_text("one", encoding="utf-8")
    watcher = PollingWatcher()
    fired = []
    unsubscribe = watcher.subscribe(path, lambda: fired.append(1))

    unsubscribe()
    _touch(path, "two")

    assert watcher.poll() == []
    assert fired == []
    assert watcher.paths == []
    unsubscribe()


def test_deleted_files_do_not_fire(tmp_path) -> None:
    path = tmp_path / "gone.rs.shadow"
    path.write_text("x", encoding="utf-8")
    watcher = PollingWatcher()
    fired = []
    watcher.subscribe(path, lambda: fired.append(1))

    path.unlink()

    assert watcher.poll() == []
    assert fired == []

    path.write_text("back again", encoding="utf-8")

    assert watcher.poll() == [path.resolve()]
    assert fired == [1]
