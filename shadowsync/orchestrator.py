"""Command flows shared by the CLI and the service."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import ShadowSyncConfig, load_config
from .llm import LLMRunner
from .logging import get_logger
from .models import ConversionOutcome
from .notify import Notifier, RecordingNotifier, Sink
from .pipeline import CodeGenerator, ConversionPipeline, WriterFactory
from .resolvers import ReconcileReport
from .resolvers.utils import InstallRunner
from .scheduler import GenerationScheduler
from .shadow_files import (
    OpenResult,
    copy_target_into_shadow,
    iter_shadow_files,
    open_shadow,
    target_path_for,
    workspace_root_for,
)
from .stores.checkpoints import CheckpointStore
from .watch import PollingWatcher

GeneratorFactory = Callable[[ShadowSyncConfig], CodeGenerator]


def _default_generator(config: ShadowSyncConfig) -> CodeGenerator:
    return LLMRunner.from_config(config.llm)


@dataclass
class ConvertResult:
    """Result of a one-shot conversion."""

    shadow_path: Path
    target_path: Path
    outcome: Optional[ConversionOutcome]
    reports: List[ReconcileReport] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.errors:
            return "error"
        if self.outcome is None:
            return "unchanged"
        if self.outcome.discarded:
            return "discarded"
        return "applied" if self.outcome.applied else "no_changes"


class Orchestrator:
    """Wires config, checkpoints, pipeline and scheduler together per command.

    One checkpoint store and one conversion scheduler are kept per workspace
    root for the orchestrator's lifetime, so concurrent conversions of the same
    shadow file (service mode) queue behind each other instead of racing.
    """

    def __init__(
        self,
        generator_factory: GeneratorFactory | None = None,
        *,
        sink: Sink | None = None,
        install_runner: InstallRunner | None = None,
        writer_factory: WriterFactory | None = None,
    ) -> None:
        self.generator_factory = generator_factory or _default_generator
        self.sink = sink
        self.install_runner = install_runner
        self.writer_factory = writer_factory
        self.logger = get_logger("orchestrator")
        self._stores: Dict[Path, CheckpointStore] = {}
        self._schedulers: Dict[Path, GenerationScheduler] = {}

    def load(self, path: Path | str, *, root: Path | str | None = None) -> ShadowSyncConfig:
        workspace = Path(root) if root else workspace_root_for(Path(path))
        return load_config(workspace.resolve())

    def run_open(self, file: Path | str, *, root: Path | str | None = None) -> OpenResult:
        config = self.load(file, root=root)
        target = Path(file)
        if not target.exists():
            raise FileNotFoundError(f"Source file not found: {target}")
        return open_shadow(target, config.root, self._store(config), config.shadow)

    def run_copy(self, shadow: Path | str, *, root: Path | str | None = None) -> Path:
        config = self.load(shadow, root=root)
        shadow_path = Path(shadow)
        copy_target_into_shadow(shadow_path, config.root, self._store(config), config.shadow)
        return target_path_for(shadow_path, config.root, config.shadow)

    async def run_convert(
        self, shadow: Path | str, *, root: Path | str | None = None
    ) -> ConvertResult:
        """Convert one shadow file now and wait for dependency reconciliation."""
        config = self.load(shadow, root=root)
        shadow_path = Path(shadow).resolve()
        if not shadow_path.exists():
            raise FileNotFoundError(f"Shadow file not found: {shadow_path}")
        target = target_path_for(shadow_path, config.root, config.shadow)

        notifier = RecordingNotifier(self.sink)
        pipeline = self._pipeline(config, notifier)
        scheduler = self._scheduler(config)
        scheduler.watch(shadow_path, target)
        try:
            outcome = await scheduler.convert_now(shadow_path, pipeline=pipeline)
        finally:
            reports = await pipeline.drain()
        return ConvertResult(
            shadow_path=shadow_path,
            target_path=target,
            outcome=outcome,
            reports=reports,
            errors=notifier.of_level("error"),
        )

    async def run_watch(
        self, root: Path | str, *, stop: asyncio.Event | None = None
    ) -> None:
        """Watch every shadow file under ``root`` until ``stop`` is set."""
        config = load_config(Path(root).resolve())
        stop = stop or asyncio.Event()
        store = self._store(config)
        if store.cleanup_ghosts():
            store.persist()

        notifier = RecordingNotifier(self.sink)
        watcher = PollingWatcher(config.scheduler.poll_interval)
        pipeline = self._pipeline(config, notifier)
        scheduler = GenerationScheduler(
            pipeline,
            store,
            debounce_seconds=config.scheduler.debounce_seconds,
            shadow_config=config.shadow,
            change_source=watcher,
            notifier=notifier,
        )
        self.logger.info("Watching shadow files under %s", config.root)
        try:
            while not stop.is_set():
                self._sync_watched(scheduler, config)
                watcher.poll()
                try:
                    await asyncio.wait_for(stop.wait(), timeout=config.scheduler.poll_interval)
                except asyncio.TimeoutError:
                    pass
            await scheduler.wait_idle()
        finally:
            scheduler.close()
            await pipeline.drain()

    def run_cleanup(self, root: Path | str) -> List[str]:
        config = load_config(Path(root).resolve())
        store = self._store(config)
        removed = store.cleanup_ghosts()
        store.persist()
        return removed

    # ------------------------------------------------------------------
    # Helpers

    def _store(self, config: ShadowSyncConfig) -> CheckpointStore:
        store = self._stores.get(config.root)
        if store is None:
            store = CheckpointStore(config.resolved_checkpoints_path())
            self._stores[config.root] = store
        return store

    def _scheduler(self, config: ShadowSyncConfig) -> GenerationScheduler:
        scheduler = self._schedulers.get(config.root)
        if scheduler is None:
            scheduler = GenerationScheduler(
                self._pipeline(config, Notifier(self.sink)),
                self._store(config),
                debounce_seconds=config.scheduler.debounce_seconds,
                shadow_config=config.shadow,
            )
            self._schedulers[config.root] = scheduler
        return scheduler

    def _pipeline(
        self, config: ShadowSyncConfig, notifier: Notifier
    ) -> ConversionPipeline:
        return ConversionPipeline.from_config(
            config,
            self.generator_factory(config),
            notifier=notifier,
            writer_factory=self.writer_factory,
            install_runner=self.install_runner,
        )

    @staticmethod
    def _sync_watched(scheduler: GenerationScheduler, config: ShadowSyncConfig) -> None:
        present = {str(path.resolve()) for path in iter_shadow_files(config.root, config.shadow)}
        for shadow_id in scheduler.active_ids():
            if shadow_id not in present:
                scheduler.unwatch(shadow_id)
        for shadow_id in sorted(present):
            if not scheduler.is_watching(shadow_id):
                scheduler.watch(shadow_id)


__all__ = ["ConvertResult", "GeneratorFactory", "Orchestrator"]
