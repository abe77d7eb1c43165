from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterator

import pytest

from shadowsync.errors import GenerationError
from shadowsync.models import ShadowFileState
from shadowsync.notify import RecordingNotifier
from shadowsync.pipeline import ConversionPipeline, strip_code_fences
from shadowsync.resolvers.utils import PackageInstaller
from tests._fixtures.workspace import FakeGenerator, StreamingGenerator


def _state(
    workspace, target: str, pseudocode_path: Path | None = None, checkpoint: str = ""
) -> ShadowFileState:
    target_path = workspace.path(target)
    shadow = pseudocode_path or workspace.path(f".shadows/{target}.shadow")
    return ShadowFileState(
        shadow_id=str(shadow),
        target_id=str(target_path),
        language_tag=target_path.suffix[1:],
        last_checkpoint=checkpoint,
    )


def _pipeline(workspace, generator, runner=None, **kwargs) -> ConversionPipeline:
    notifier = RecordingNotifier()
    return ConversionPipeline(
        workspace.root,
        generator,
        installer=PackageInstaller(runner or (lambda *a, **k: ""), notifier=notifier),
        notifier=notifier,
        **kwargs,
    )


def test_strip_code_fences() -> None:
    assert strip_code_fences("```rust\nfn main() {}\n```") == "fn main() {}"
    assert strip_code_fences("```\nx = 1\n```\n") == "x = 1"
    assert strip_code_fences("  plain  \n") == "plain"
    assert strip_code_fences("a ```b``` c") == "a ```b``` c"


def test_whole_response_replaces_target(workspace) -> None:
    workspace.write(
        {
            "src/app.ts": "old code",
            "lib/a.ts": "export const a = 1;",
        }
    )
    generator = FakeGenerator(["```ts\nconst x = 1;\n```"])
    pipeline = _pipeline(workspace, generator)

    outcome = asyncio.run(
        pipeline.convert(_state(workspace, "src/app.ts"), 'use("lib/a.ts")\nexport foo')
    )

    assert outcome.applied
    assert outcome.diff == "+ export foo"
    assert workspace.read("src/app.ts") == "const x = 1;"
    system, user = generator.calls[0]
    assert "TypeScript" in system
    assert "## Pseudocode diff\n+ export foo" in user
    assert "## Existing code\nold code" in user
    assert "**lib/a.ts:**\n```\nexport const a = 1;\n```" in user
    assert "{{manifest}}" not in user


def test_diff_is_taken_against_checkpoint(workspace) -> None:
    workspace.write({"main.py": "print('hi')"})
    generator = FakeGenerator(["print('bye')"])
    pipeline = _pipeline(workspace, generator, reconcile=False)

    outcome = asyncio.run(
        pipeline.convert(
            _state(workspace, "main.py", checkpoint="say hi\nexit"), "say bye\nexit"
        )
    )

    assert outcome.diff.splitlines() == ["- say hi", "+ say bye", "  exit"]


def test_streamed_fragments_are_written_live_then_replaced(workspace) -> None:
    workspace.write({"src/app.ts": "old code"})
    target = workspace.path("src/app.ts")
    generator = StreamingGenerator(["```ts\n", "const a", " = 1;\n", "```"])
    generator.observe = target
    pipeline = _pipeline(workspace, generator)

    outcome = asyncio.run(pipeline.convert(_state(workspace, "src/app.ts"), "declare a"))

    assert generator.seen_targets[:2] == ["```ts\n", "```ts\nconst a"]
    assert target.read_text(encoding="utf-8") == "const a = 1;"
    assert outcome.output == "const a = 1;"


def test_stream_disabled_uses_whole_generation(workspace) -> None:
    workspace.write({"src/app.ts": "old code"})
    generator = StreamingGenerator(["unused"])
    generator.outputs = ["whole"]
    pipeline = _pipeline(workspace, generator, stream=False)

    asyncio.run(pipeline.convert(_state(workspace, "src/app.ts"), "declare a"))

    assert workspace.read("src/app.ts") == "whole"


def test_failed_stream_restores_previous_code(workspace) -> None:
    workspace.write({"src/app.ts": "old code"})
    generator = StreamingGenerator(["partial"], error=GenerationError("connection reset"))
    pipeline = _pipeline(workspace, generator)

    with pytest.raises(GenerationError, match="connection reset"):
        asyncio.run(pipeline.convert(_state(workspace, "src/app.ts"), "declare a"))

    assert workspace.read("src/app.ts") == "old code"


def test_empty_output_leaves_target_untouched(workspace) -> None:
    workspace.write({"src/app.ts": "old code"})
    pipeline = _pipeline(workspace, FakeGenerator(["```\n```"]))

    outcome = asyncio.run(pipeline.convert(_state(workspace, "src/app.ts"), "nothing"))

    assert not outcome.applied
    assert not outcome.discarded
    assert workspace.read("src/app.ts") == "old code"


def test_output_is_discarded_when_no_longer_current(workspace) -> None:
    workspace.write({"src/app.ts": "old code"})
    generator = FakeGenerator(["new code"])
    pipeline = _pipeline(workspace, generator)

    outcome = asyncio.run(
        pipeline.convert(_state(workspace, "src/app.ts"), "x", is_current=lambda: False)
    )

    assert outcome.discarded
    assert generator.calls == []
    assert workspace.read("src/app.ts") == "old code"


def test_output_arriving_after_teardown_is_not_written(workspace) -> None:
    workspace.write({"src/app.ts": "old code"})
    current = {"value": True}

    class StopsMidway(FakeGenerator):
        async def generate(self, system_prompt: str, user_prompt: str) -> str:
            current["value"] = False
            return "late code"

    pipeline = _pipeline(workspace, StopsMidway())

    outcome = asyncio.run(
        pipeline.convert(
            _state(workspace, "src/app.ts"), "x", is_current=lambda: current["value"]
        )
    )

    assert outcome.discarded
    assert workspace.read("src/app.ts") == "old code"


def test_missing_target_is_created(workspace) -> None:
    pipeline = _pipeline(workspace, FakeGenerator(["fn main() {}"]), reconcile=False)

    asyncio.run(pipeline.convert(_state(workspace, "src/new/main.rs"), "entry point"))

    assert workspace.read("src/new/main.rs") == "fn main() {}"


def test_dependencies_are_reconciled_in_background(workspace, installer_runner) -> None:
    workspace.write(
        {
            "Cargo.toml": '[package]\nname = "app"\n\n[dependencies]\nserde = "1.0"\n',
            "src/main.rs": "",
        }
    )
    generator = FakeGenerator(["use serde::Serialize;\nuse tokio::net::TcpListener;"])
    pipeline = _pipeline(workspace, generator, runner=installer_runner)

    async def run():
        await pipeline.convert(_state(workspace, "src/main.rs"), "listen")
        return await pipeline.drain()

    reports = asyncio.run(run())

    assert [report.missing for report in reports] == [["tokio"]]
    assert installer_runner.commands == [(["cargo", "add", "tokio"], workspace.root)]
    _, user = generator.calls[0]
    assert '## Cargo.toml\n[package]\nname = "app"' in user


def test_placeholder_text_in_user_content_is_not_replaced(workspace) -> None:
    workspace.write(
        {
            "Cargo.toml": '[package]\nname = "app"\n',
            "src/main.rs": 'const TEMPLATE: &str = "{{manifest}}";',
        }
    )
    generator = FakeGenerator(["fn main() {}"])
    pipeline = _pipeline(workspace, generator)

    asyncio.run(
        pipeline.convert(_state(workspace, "src/main.rs"), "print {{manifest}} verbatim")
    )

    _, user = generator.calls[0]
    assert "+ print {{manifest}} verbatim" in user
    assert 'const TEMPLATE: &str = "{{manifest}}";' in user
    assert '## Cargo.toml\n[package]\nname = "app"' in user


def test_resolver_failure_does_not_fail_conversion(workspace) -> None:
    workspace.write({"src/app.go": ""})

    class BrokenResolver:
        def __init__(self, *args, **kwargs):
            pass

        def extract_manifest_context(self, base_prompt, *, target_path, workspace_root):
            from shadowsync.resolvers import ManifestContext

            return ManifestContext(prompt=base_prompt)

        def reconcile_dependencies(self, location, text, generated_code):
            raise RuntimeError("resolver exploded")

    pipeline = _pipeline(
        workspace, FakeGenerator(["package main"]), resolver_factory=BrokenResolver
    )

    async def run():
        outcome = await pipeline.convert(_state(workspace, "src/app.go"), "x")
        return outcome, await pipeline.drain()

    outcome, reports = asyncio.run(run())

    assert outcome.applied
    assert reports == []


def test_blocking_generators_run_in_executor(workspace) -> None:
    workspace.write({"main.py": ""})

    class BlockingGenerator:
        def generate(self, system_prompt: str, user_prompt: str) -> str:
            return "print('sync')"

    class BlockingStreamer:
        def generate(self, system_prompt: str, user_prompt: str) -> str:
            raise AssertionError("stream expected")

        def stream(self, system_prompt: str, user_prompt: str) -> Iterator[str]:
            yield "print("
            yield "'streamed')"

    asyncio.run(
        _pipeline(workspace, BlockingGenerator(), reconcile=False).convert(
            _state(workspace, "main.py"), "x"
        )
    )
    assert workspace.read("main.py") == "print('sync')"

    asyncio.run(
        _pipeline(workspace, BlockingStreamer(), reconcile=False).convert(
            _state(workspace, "main.py"), "y"
        )
    )
    assert workspace.read("main.py") == "print('streamed')"


def test_configuration_is_checked_before_any_work(workspace) -> None:
    from shadowsync.errors import ConfigurationError

    class Unconfigured(FakeGenerator):
        def ensure_configured(self) -> None:
            raise ConfigurationError("No model configured.")

    generator = Unconfigured()
    pipeline = _pipeline(workspace, generator)

    with pytest.raises(ConfigurationError):
        asyncio.run(pipeline.convert(_state(workspace, "a.ts"), "x"))
    assert generator.calls == []
