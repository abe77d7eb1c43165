from __future__ import annotations

from pathlib import Path

import pytest

from shadowsync.config import ShadowConfig
from shadowsync.shadow_files import (
    copy_target_into_shadow,
    is_shadow_path,
    iter_shadow_files,
    language_tag_for,
    open_shadow,
    shadow_path_for,
    target_path_for,
    workspace_root_for,
)
from shadowsync.stores.checkpoints import CheckpointStore


def test_shadow_paths_mirror_the_workspace(workspace) -> None:
    target = workspace.path("src/lib/util.py")

    shadow = shadow_path_for(target, workspace.root)

    assert shadow == workspace.path(".shadows/src/lib/util.py.shadow")
    assert target_path_for(shadow, workspace.root) == target
    assert is_shadow_path(shadow, workspace.root)
    assert not is_shadow_path(target, workspace.root)


def test_custom_directory_and_suffix(workspace) -> None:
    config = ShadowConfig(directory="pseudo", suffix=".pseudo")

    shadow = shadow_path_for(workspace.path("main.rs"), workspace.root, config)

    assert shadow == workspace.path("pseudo/main.rs.pseudo")
    assert target_path_for(shadow, workspace.root, config) == workspace.path("main.rs")


def test_invalid_paths_are_rejected(workspace, tmp_path) -> None:
    with pytest.raises(ValueError, match="already a shadow"):
        shadow_path_for(workspace.path(".shadows/a.py.shadow"), workspace.root)
    with pytest.raises(ValueError, match="not inside the workspace"):
        shadow_path_for(tmp_path / "elsewhere.py", workspace.root)
    with pytest.raises(ValueError, match="not a shadow file"):
        target_path_for(workspace.path("a.py"), workspace.root)


def test_language_tag_keeps_case() -> None:
    assert language_tag_for(Path("App.TSX")) == "TSX"
    assert language_tag_for(Path("Makefile")) == ""


def test_open_seeds_shadow_and_checkpoint(workspace) -> None:
    workspace.write({"src/app.ts": "export const a = 1;\n"})
    store = CheckpointStore(workspace.path(".shadowsync/checkpoints.json"))

    result = open_shadow(workspace.path("src/app.ts"), workspace.root, store)

    assert result.created
    assert result.shadow_path.read_text(encoding="utf-8") == "export const a = 1;\n"
    reloaded = CheckpointStore(workspace.path(".shadowsync/checkpoints.json"))
    assert reloaded.get(str(result.shadow_path)) == "export const a = 1;\n"


def test_open_leaves_existing_shadow_alone(workspace) -> None:
    workspace.write({"src/app.ts": "code"})
    shadow = workspace.shadow("src/app.ts", "my pseudocode")
    store = CheckpointStore(None)

    result = open_shadow(workspace.path("src/app.ts"), workspace.root, store)

    assert not result.created
    assert result.shadow_path == shadow
    assert shadow.read_text(encoding="utf-8") == "my pseudocode"
    assert store.get(str(shadow)) is None


def test_copy_target_resets_shadow_and_checkpoint(workspace) -> None:
    workspace.write({"main.py": "print('real')"})
    shadow = workspace.shadow("main.py", "stale pseudocode")
    store = CheckpointStore(workspace.path(".shadowsync/checkpoints.json"))
    store.set(str(shadow), "stale pseudocode")

    code = copy_target_into_shadow(shadow, workspace.root, store)

    assert code == "print('real')"
    assert shadow.read_text(encoding="utf-8") == "print('real')"
    assert store.get(str(shadow)) == "print('real')"


def test_iter_shadow_files_lists_sorted(workspace) -> None:
    workspace.shadow("b.py", "")
    workspace.shadow("a/c.rs", "")
    workspace.write({".shadows/notes.txt": "ignored"})

    found = list(iter_shadow_files(workspace.root))

    assert found == [
        workspace.path(".shadows/a/c.rs.shadow"),
        workspace.path(".shadows/b.py.shadow"),
    ]


def test_workspace_root_prefers_config_or_git(workspace) -> None:
    workspace.write({".shadowsync.yml": "", "pkg/mod/file.py": ""})

    assert workspace_root_for(workspace.path("pkg/mod/file.py")) == workspace.root
    assert workspace_root_for(workspace.path("pkg/mod/missing.py")) == workspace.root
