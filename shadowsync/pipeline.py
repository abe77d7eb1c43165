"""One conversion round: pseudocode diff in, generated code applied to the target."""

from __future__ import annotations

import asyncio
import inspect
import re
from dataclasses import dataclass
from pathlib import Path
from typing import (
    Any,
    AsyncIterator,
    Callable,
    List,
    Optional,
    Protocol,
    Set,
    runtime_checkable,
)

from .config import ShadowSyncConfig
from .logging import get_logger
from .models import ConversionOutcome, ShadowFileState
from .notify import Notifier
from .prompting import MANIFEST_PLACEHOLDER, PromptAssembler, PromptPair
from .pseudocode import DiffEngine, DirectiveContextExtractor, DirectiveSyntax
from .resolvers import DependencyResolver, ManifestContext, ReconcileReport, get_resolver
from .resolvers.utils import InstallRunner, PackageInstaller

_OPENING_FENCE = re.compile(r"^```[^\n`]*\r?\n")
_CLOSING_FENCE = re.compile(r"\r?\n?```$")


def strip_code_fences(text: str) -> str:
    """Remove a Markdown fence wrapped around the whole response."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = _OPENING_FENCE.sub("", stripped, count=1)
        stripped = _CLOSING_FENCE.sub("", stripped, count=1)
    return stripped.strip()


@runtime_checkable
class TargetWriter(Protocol):
    """Edit surface for a target file."""

    def read(self) -> str:
        ...

    def clear(self) -> None:
        ...

    def append(self, text: str) -> None:
        ...

    def replace(self, text: str) -> None:
        ...


class FileTargetWriter:
    """Writes straight to the target file on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def clear(self) -> None:
        self.replace("")

    def append(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(text)

    def replace(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(text, encoding="utf-8")


WriterFactory = Callable[[Path], TargetWriter]
ResolverFactory = Callable[..., DependencyResolver]


class CodeGenerator(Protocol):
    def generate(self, system_prompt: str, user_prompt: str) -> Any:
        ...


@dataclass
class PreparedConversion:
    diff: str
    prompts: PromptPair
    manifest: ManifestContext
    resolver: DependencyResolver
    existing_code: str


class ConversionPipeline:
    """Builds prompts for a shadow file, runs the model and applies its output.

    The pipeline never touches checkpoints: it reports what happened and the
    scheduler decides whether the checkpoint advances.
    """

    def __init__(
        self,
        workspace_root: Path,
        generator: CodeGenerator,
        *,
        diff_engine: DiffEngine | None = None,
        context_extractor: DirectiveContextExtractor | None = None,
        prompt_assembler: PromptAssembler | None = None,
        writer_factory: WriterFactory | None = None,
        resolver_factory: ResolverFactory | None = None,
        installer: PackageInstaller | None = None,
        notifier: Notifier | None = None,
        stream: bool = True,
        reconcile: bool = True,
    ) -> None:
        self.workspace_root = Path(workspace_root).resolve()
        self.generator = generator
        self.diff_engine = diff_engine or DiffEngine()
        self.context_extractor = context_extractor or DirectiveContextExtractor(
            self.workspace_root
        )
        self.prompt_assembler = prompt_assembler or PromptAssembler()
        self.writer_factory: WriterFactory = writer_factory or FileTargetWriter
        self.resolver_factory: ResolverFactory = resolver_factory or get_resolver
        self.notifier = notifier or Notifier()
        self.installer = installer or PackageInstaller(notifier=self.notifier)
        self.stream = stream
        self.reconcile = reconcile
        self._background: Set[asyncio.Task[ReconcileReport | None]] = set()
        self._finished: List[ReconcileReport] = []
        self.logger = get_logger("pipeline")

    @classmethod
    def from_config(
        cls,
        config: ShadowSyncConfig,
        generator: CodeGenerator,
        *,
        notifier: Notifier | None = None,
        writer_factory: WriterFactory | None = None,
        install_runner: InstallRunner | None = None,
    ) -> "ConversionPipeline":
        notifier = notifier or Notifier()
        syntax = DirectiveSyntax(config.directives)
        installer = PackageInstaller(
            install_runner,
            notifier=notifier,
            enabled=config.dependencies.auto_install,
            timeout=config.dependencies.install_timeout,
        )
        return cls(
            config.root,
            generator,
            diff_engine=DiffEngine(syntax),
            context_extractor=DirectiveContextExtractor(config.root, syntax),
            prompt_assembler=PromptAssembler(config.templates_dir),
            writer_factory=writer_factory,
            installer=installer,
            notifier=notifier,
            stream=config.llm.stream,
            reconcile=config.dependencies.enabled,
        )

    # ------------------------------------------------------------------
    # Conversion

    def prepare(self, state: ShadowFileState, pseudocode: str) -> PreparedConversion:
        """Diff, gather context and assemble prompts. Blocking file I/O."""
        previous = state.last_checkpoint or None
        diff = self.diff_engine.build(previous, pseudocode)
        context = self.context_extractor.extract(pseudocode)
        existing = self.writer_factory(state.target_path).read()
        resolver = self.resolver_factory(state.language_tag, installer=self.installer)
        # Resolved on its own so a placeholder inside user text is left alone.
        manifest = resolver.extract_manifest_context(
            MANIFEST_PLACEHOLDER,
            target_path=state.target_path,
            workspace_root=self.workspace_root,
        )
        prompts = self.prompt_assembler.assemble(
            state.language_tag,
            diff=diff,
            context=context,
            existing_code=existing,
            manifest=manifest.prompt,
        )
        self.logger.debug(
            "Prepared %s: %s", state.shadow_id, self.diff_engine.summary(previous, pseudocode)
        )
        return PreparedConversion(
            diff=diff,
            prompts=prompts,
            manifest=manifest,
            resolver=resolver,
            existing_code=existing,
        )

    async def convert(
        self,
        state: ShadowFileState,
        pseudocode: str,
        *,
        is_current: Callable[[], bool] = lambda: True,
    ) -> ConversionOutcome:
        """Run one generation for ``state`` and apply the output to its target.

        ``is_current`` is consulted before every write; once it returns False
        the rest of the output is discarded and the target is left alone.
        """
        ensure_configured = getattr(self.generator, "ensure_configured", None)
        if callable(ensure_configured):
            ensure_configured()

        loop = asyncio.get_running_loop()
        prepared = await loop.run_in_executor(None, self.prepare, state, pseudocode)
        if not is_current():
            return ConversionOutcome(applied=False, output="", diff=prepared.diff, discarded=True)

        writer = self.writer_factory(state.target_path)
        if self.stream and callable(getattr(self.generator, "stream", None)):
            output, discarded = await self._apply_stream(writer, prepared, is_current)
        else:
            output, discarded = await self._apply_whole(writer, prepared, is_current)

        if discarded:
            self.logger.info("Discarding output for %s: no longer watched", state.shadow_id)
            return ConversionOutcome(applied=False, output=output, diff=prepared.diff, discarded=True)
        if not output:
            self.logger.info("Model returned no code for %s; target left untouched", state.target_id)
            return ConversionOutcome(applied=False, output="", diff=prepared.diff)

        if self.reconcile:
            self._schedule_reconcile(prepared, output)
        return ConversionOutcome(applied=True, output=output, diff=prepared.diff)

    async def _apply_whole(
        self,
        writer: TargetWriter,
        prepared: PreparedConversion,
        is_current: Callable[[], bool],
    ) -> tuple[str, bool]:
        raw = await self._generate(prepared.prompts)
        output = strip_code_fences(raw)
        if not is_current():
            return output, True
        if output:
            writer.replace(output)
        return output, False

    async def _apply_stream(
        self,
        writer: TargetWriter,
        prepared: PreparedConversion,
        is_current: Callable[[], bool],
    ) -> tuple[str, bool]:
        fragments: List[str] = []
        touched = False
        try:
            async for fragment in self._stream(prepared.prompts):
                if not is_current():
                    return strip_code_fences("".join(fragments)), True
                if not fragment:
                    continue
                if not touched:
                    writer.clear()
                    touched = True
                fragments.append(fragment)
                writer.append(fragment)
        except Exception:
            if touched and is_current():
                writer.replace(prepared.existing_code)
            raise

        output = strip_code_fences("".join(fragments))
        if not is_current():
            return output, True
        if output:
            writer.replace(output)
        elif touched:
            writer.replace(prepared.existing_code)
        return output, False

    async def _generate(self, prompts: PromptPair) -> str:
        generate = self.generator.generate
        if inspect.iscoroutinefunction(generate):
            result = await generate(prompts.system, prompts.user)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, generate, prompts.system, prompts.user)
            if inspect.isawaitable(result):
                result = await result
        if result is None:
            return ""
        if isinstance(result, str):
            return result
        return "".join(result)

    async def _stream(self, prompts: PromptPair) -> AsyncIterator[str]:
        stream = getattr(self.generator, "stream")
        if inspect.isasyncgenfunction(stream):
            async for fragment in stream(prompts.system, prompts.user):
                yield fragment
            return

        loop = asyncio.get_running_loop()
        if inspect.iscoroutinefunction(stream):
            result = await stream(prompts.system, prompts.user)
        else:
            result = await loop.run_in_executor(None, stream, prompts.system, prompts.user)
        if result is None:
            return
        if isinstance(result, str):
            yield result
            return
        if hasattr(result, "__aiter__"):
            async for fragment in result:
                yield fragment
            return

        iterator = iter(result)
        sentinel = object()
        while True:
            fragment = await loop.run_in_executor(None, next, iterator, sentinel)
            if fragment is sentinel:
                break
            yield fragment

    # ------------------------------------------------------------------
    # Dependency reconciliation

    def _schedule_reconcile(self, prepared: PreparedConversion, output: str) -> None:
        task = asyncio.get_running_loop().create_task(self._reconcile(prepared, output))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _reconcile(
        self, prepared: PreparedConversion, output: str
    ) -> Optional[ReconcileReport]:
        loop = asyncio.get_running_loop()
        try:
            report = await loop.run_in_executor(
                None,
                prepared.resolver.reconcile_dependencies,
                prepared.manifest.location,
                prepared.manifest.text,
                output,
            )
        except Exception:
            self.logger.exception("Dependency reconciliation failed")
            return None
        if report.missing:
            self.logger.info("Missing dependencies: %s", ", ".join(report.missing))
        self._finished.append(report)
        return report

    async def drain(self) -> List[ReconcileReport]:
        """Wait for background reconciliation and return reports finished since the last drain."""
        while self._background:
            await asyncio.gather(*list(self._background))
        finished, self._finished = self._finished, []
        return finished


__all__ = [
    "CodeGenerator",
    "ConversionPipeline",
    "FileTargetWriter",
    "PreparedConversion",
    "TargetWriter",
    "WriterFactory",
    "strip_code_fences",
]
