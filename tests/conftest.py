from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.workspace import RecordingInstaller, WorkspaceBuilder


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a reusable workspace builder rooted at the pytest tmp_path."""
    return WorkspaceBuilder(tmp_path)


@pytest.fixture
def installer_runner() -> RecordingInstaller:
    return RecordingInstaller()
