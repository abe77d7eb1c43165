from __future__ import annotations

from shadowsync.notify import RecordingNotifier
from shadowsync.resolvers import RustResolver
from shadowsync.resolvers.utils import PackageInstaller
from shadowsync.prompting import MANIFEST_PLACEHOLDER

CARGO_TOML = """
[package]
name = "demo-app"
version = "0.1.0"

[dependencies]
serde = "1.0"
serde-json = "1.0"

[dev-dependencies]
pretty_assertions = "1"
"""


def _resolver(runner, **kwargs) -> RustResolver:
    return RustResolver(installer=PackageInstaller(runner, notifier=RecordingNotifier(), **kwargs))


def test_missing_crates_are_added_with_cargo(workspace, installer_runner) -> None:
    workspace.write({"Cargo.toml": CARGO_TOML})
    location = workspace.path("Cargo.toml")
    code = "use serde::Serialize;\nuse tokio::runtime::Runtime;\n"

    report = _resolver(installer_runner).reconcile_dependencies(
        location, workspace.read("Cargo.toml"), code
    )

    assert report.missing == ["tokio"]
    assert report.installed == ["tokio"]
    assert installer_runner.commands == [(["cargo", "add", "tokio"], workspace.root)]


def test_hyphenated_and_scoped_crates_count_as_declared(workspace, installer_runner) -> None:
    workspace.write({"Cargo.toml": CARGO_TOML})
    code = """
use serde_json::Value;
use pretty_assertions::assert_eq;
use std::collections::HashMap;
use crate::config::Settings;
use demo_app::run;
"""

    report = _resolver(installer_runner).reconcile_dependencies(
        workspace.path("Cargo.toml"), workspace.read("Cargo.toml"), code
    )

    assert report.missing == []
    assert installer_runner.commands == []


def test_brace_and_extern_imports_are_detected() -> None:
    resolver = RustResolver()

    used = resolver.used_identifiers(
        "use {rand::Rng, log::info};\nextern crate regex;\npub(crate) use anyhow::Result;\n"
    )

    assert used == {"rand", "log", "regex", "anyhow"}


def test_underscored_crates_are_installed_with_hyphens(workspace, installer_runner) -> None:
    workspace.write({"Cargo.toml": CARGO_TOML})

    report = _resolver(installer_runner).reconcile_dependencies(
        workspace.path("Cargo.toml"), workspace.read("Cargo.toml"), "use async_trait::async_trait;"
    )

    assert report.missing == ["async_trait"]
    assert installer_runner.commands[0][0] == ["cargo", "add", "async-trait"]


def test_unparseable_manifest_only_warns(workspace, installer_runner) -> None:
    workspace.write({"Cargo.toml": "[package\nname = "})
    notifier = RecordingNotifier()
    resolver = RustResolver(installer=PackageInstaller(installer_runner, notifier=notifier))

    report = resolver.reconcile_dependencies(
        workspace.path("Cargo.toml"), workspace.read("Cargo.toml"), "use tokio::net;"
    )

    assert report.warnings == ["Could not parse Cargo.toml; dependency auto-install skipped."]
    assert notifier.of_level("warning") == report.warnings
    assert installer_runner.commands == []


def test_install_failure_is_reported_not_raised(workspace) -> None:
    import subprocess

    from tests._fixtures.workspace import RecordingInstaller

    workspace.write({"Cargo.toml": CARGO_TOML})
    runner = RecordingInstaller(
        subprocess.CalledProcessError(101, ["cargo"], stderr="error: no such crate")
    )
    notifier = RecordingNotifier()
    resolver = RustResolver(installer=PackageInstaller(runner, notifier=notifier))

    report = resolver.reconcile_dependencies(
        workspace.path("Cargo.toml"), workspace.read("Cargo.toml"), "use tokio::net;"
    )

    assert report.installed == []
    assert "error: no such crate" in report.warnings[0]
    assert notifier.of_level("warning")


def test_disabled_installer_suggests_command(workspace, installer_runner) -> None:
    workspace.write({"Cargo.toml": CARGO_TOML})

    report = _resolver(installer_runner, enabled=False).reconcile_dependencies(
        workspace.path("Cargo.toml"), workspace.read("Cargo.toml"), "use tokio::net;"
    )

    assert installer_runner.commands == []
    assert report.suggestions == [f"Run `cargo add tokio` in {workspace.root}"]


def test_manifest_context_substitutes_nearest_cargo_toml(workspace) -> None:
    workspace.write(
        {
            "Cargo.toml": "[workspace]\n",
            "crates/core/Cargo.toml": CARGO_TOML,
            "crates/core/src/lib.rs": "",
        }
    )
    prompt = f"## Cargo.toml\n{MANIFEST_PLACEHOLDER}"

    context = RustResolver().extract_manifest_context(
        prompt,
        target_path=workspace.path("crates/core/src/lib.rs"),
        workspace_root=workspace.root,
    )

    assert context.location == workspace.path("crates/core/Cargo.toml")
    assert 'serde = "1.0"' in context.prompt
    assert MANIFEST_PLACEHOLDER not in context.prompt


def test_no_manifest_blanks_placeholder_and_skips(workspace, installer_runner) -> None:
    workspace.write({"src/main.rs": ""})
    resolver = _resolver(installer_runner)

    context = resolver.extract_manifest_context(
        f"before {MANIFEST_PLACEHOLDER} after",
        target_path=workspace.path("src/main.rs"),
        workspace_root=workspace.root,
    )
    report = resolver.reconcile_dependencies(context.location, context.text, "use tokio::net;")

    assert context.prompt == "before  after"
    assert context.location is None
    assert report.missing == []
    assert installer_runner.commands == []


def test_crate_modules_are_not_installed(workspace, installer_runner) -> None:
    workspace.write(
        {
            "Cargo.toml": CARGO_TOML,
            "src/main.rs": "",
            "src/config.rs": "",
            "src/net/mod.rs": "",
        }
    )
    code = (
        "mod utils;\n"
        "mod config;\n"
        "mod net;\n"
        "use utils::helper;\n"
        "use config::Settings;\n"
        "use net::{Client, Server};\n"
        "use serde::Serialize;\n"
    )

    report = _resolver(installer_runner).reconcile_dependencies(
        workspace.path("Cargo.toml"), CARGO_TOML, code
    )

    assert report.missing == []
    assert installer_runner.commands == []


def test_local_modules_come_from_declarations_and_src(workspace) -> None:
    workspace.write({"src/lib.rs": "", "src/store.rs": "", "src/api/mod.rs": ""})

    names = RustResolver().local_modules(workspace.root, "pub mod cache {\n}\n")

    assert names == {"cache", "store", "api"}
