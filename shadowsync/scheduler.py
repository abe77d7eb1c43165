"""Debounced, one-at-a-time generation for watched shadow files."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Set

from .config import ShadowConfig
from .errors import ConfigurationError, GenerationError
from .logging import get_logger
from .models import ConversionOutcome, GenerationPhase, ShadowFileState
from .notify import Notifier
from .pipeline import ConversionPipeline
from .shadow_files import language_tag_for, target_path_for
from .stores.checkpoints import CheckpointStore


class ChangeSource(Protocol):
    """Anything that can call back when a file changes."""

    def subscribe(self, path: Path, callback: Callable[[], None]) -> Callable[[], None]:
        ...


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


class GenerationScheduler:
    """Owns the registry of watched shadow files and drives their state machine.

    Each shadow file moves IDLE -> SCHEDULED on a change, SCHEDULED ->
    GENERATING when its debounce timer fires, and back to IDLE when the
    generation ends. A change seen while generating re-arms the timer; the
    timer firing while a generation is outstanding re-arms it again, so only
    one generation per file is ever in flight and the latest text always gets
    converted. ``unwatch`` is terminal for that state, but a generation it
    leaves running still blocks a later ``watch`` of the same file until it
    ends.

    Must be driven from a running event loop.
    """

    def __init__(
        self,
        pipeline: ConversionPipeline,
        store: CheckpointStore,
        *,
        debounce_seconds: float = 2.0,
        shadow_config: ShadowConfig | None = None,
        change_source: ChangeSource | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.shadow_config = shadow_config or ShadowConfig()
        self.change_source = change_source
        self.notifier = notifier or pipeline.notifier
        self._registry: Dict[str, ShadowFileState] = {}
        self._tasks: Set[asyncio.Task[Optional[ConversionOutcome]]] = set()
        # Outlives unwatch so a re-watched file waits for its old generation.
        self._outstanding: Dict[str, asyncio.Task[Optional[ConversionOutcome]]] = {}
        self.logger = get_logger("scheduler")

    @property
    def workspace_root(self) -> Path:
        return self.pipeline.workspace_root

    # ------------------------------------------------------------------
    # Registry

    def watch(
        self,
        shadow_path: Path | str,
        target_path: Path | str | None = None,
        language: str | None = None,
    ) -> ShadowFileState:
        """Start watching a shadow file; a duplicate watch returns the existing state."""
        shadow_id = self._key(shadow_path)
        existing = self._registry.get(shadow_id)
        if existing is not None:
            return existing

        if target_path is None:
            target = target_path_for(Path(shadow_id), self.workspace_root, self.shadow_config)
        else:
            target = Path(target_path).resolve()
        state = ShadowFileState(
            shadow_id=shadow_id,
            target_id=str(target),
            language_tag=language if language is not None else language_tag_for(target),
            last_checkpoint=self.store.get(shadow_id) or "",
        )
        self._registry[shadow_id] = state
        if self.change_source is not None:
            state.detach_listener = self.change_source.subscribe(
                state.shadow_path, lambda: self.notify_change(shadow_id)
            )
        self.logger.info("Watching %s -> %s", shadow_id, state.target_id)
        return state

    def unwatch(self, shadow_id: Path | str) -> bool:
        state = self._registry.pop(self._key(shadow_id), None)
        if state is None:
            return False
        if state.pending_trigger is not None:
            state.pending_trigger.cancel()
            state.pending_trigger = None
        state.phase = GenerationPhase.STOPPED
        if state.detach_listener is not None:
            detach, state.detach_listener = state.detach_listener, None
            detach()
        self.logger.info("Stopped watching %s", state.shadow_id)
        return True

    def is_watching(self, shadow_id: Path | str) -> bool:
        return self._key(shadow_id) in self._registry

    def state(self, shadow_id: Path | str) -> Optional[ShadowFileState]:
        return self._registry.get(self._key(shadow_id))

    def active_ids(self) -> List[str]:
        return list(self._registry)

    def close(self) -> None:
        for shadow_id in list(self._registry):
            self.unwatch(shadow_id)

    # ------------------------------------------------------------------
    # State machine

    def notify_change(self, shadow_id: Path | str) -> None:
        """Record a pseudocode change and (re)start the debounce timer."""
        state = self._registry.get(self._key(shadow_id))
        if state is None:
            return
        self._arm(state)

    def _arm(self, state: ShadowFileState) -> None:
        if state.pending_trigger is not None:
            state.pending_trigger.cancel()
        loop = asyncio.get_running_loop()
        state.pending_trigger = loop.call_later(self.debounce_seconds, self._fire, state)
        if state.phase is GenerationPhase.IDLE:
            state.phase = GenerationPhase.SCHEDULED

    def _fire(self, state: ShadowFileState) -> None:
        if not self._is_current(state):
            return
        state.pending_trigger = None
        if state.in_flight or self._outstanding_task(state.shadow_id) is not None:
            self._arm(state)
            return
        self._start(state)

    def _start(
        self, state: ShadowFileState, pipeline: ConversionPipeline | None = None
    ) -> asyncio.Task[Optional[ConversionOutcome]]:
        state.in_flight = True
        state.phase = GenerationPhase.GENERATING
        task = asyncio.get_running_loop().create_task(
            self._generate(state, pipeline or self.pipeline)
        )
        state.task = task
        self._tasks.add(task)
        self._outstanding[state.shadow_id] = task
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda done: self._release(state.shadow_id, done))
        return task

    def _release(self, shadow_id: str, task: asyncio.Task[Optional[ConversionOutcome]]) -> None:
        if self._outstanding.get(shadow_id) is task:
            del self._outstanding[shadow_id]

    def _outstanding_task(
        self, shadow_id: str
    ) -> Optional[asyncio.Task[Optional[ConversionOutcome]]]:
        task = self._outstanding.get(shadow_id)
        return task if task is not None and not task.done() else None

    async def _generate(
        self, state: ShadowFileState, pipeline: ConversionPipeline
    ) -> Optional[ConversionOutcome]:
        loop = asyncio.get_running_loop()
        notifier = pipeline.notifier if pipeline is not self.pipeline else self.notifier
        try:
            try:
                pseudocode = await loop.run_in_executor(None, _read_text, state.shadow_path)
            except OSError as exc:
                notifier.error(f"Could not read shadow file {state.shadow_id}: {exc}")
                return None
            if not self._is_current(state):
                return None
            # The store also takes seeds from `open` and `copy`.
            stored = self.store.get(state.shadow_id)
            if stored is not None:
                state.last_checkpoint = stored
            if pseudocode == state.last_checkpoint:
                self.logger.debug("No pseudocode changes for %s", state.shadow_id)
                return None

            outcome = await pipeline.convert(
                state, pseudocode, is_current=lambda: self._is_current(state)
            )
            if outcome.discarded or not self._is_current(state):
                return outcome

            state.last_checkpoint = pseudocode
            self.store.set(state.shadow_id, pseudocode)
            self.store.persist()
            if outcome.applied:
                notifier.info(f"Updated {self._relative(state.target_path)}")
            else:
                notifier.info("No changes needed")
            return outcome
        except ConfigurationError as exc:
            notifier.error(str(exc))
            return None
        except GenerationError as exc:
            notifier.error(f"Code generation failed: {exc}")
            return None
        except Exception as exc:
            self.logger.exception("Unexpected failure converting %s", state.shadow_id)
            notifier.error(f"Code generation failed: {exc}")
            return None
        finally:
            state.in_flight = False
            state.task = None
            if not state.stopped:
                state.phase = (
                    GenerationPhase.SCHEDULED
                    if state.pending_trigger is not None
                    else GenerationPhase.IDLE
                )

    async def convert_now(
        self, shadow_id: Path | str, *, pipeline: ConversionPipeline | None = None
    ) -> Optional[ConversionOutcome]:
        """Convert a watched shadow file immediately, skipping the debounce.

        Waits for any generation already running for the file. ``pipeline``
        overrides the scheduler's own for this one round.
        """
        state = self._registry.get(self._key(shadow_id))
        if state is None:
            raise KeyError(f"{shadow_id} is not being watched")
        if state.pending_trigger is not None:
            state.pending_trigger.cancel()
            state.pending_trigger = None
        while True:
            running = state.task or self._outstanding_task(state.shadow_id)
            if running is None:
                break
            await asyncio.wait({running})
        if not self._is_current(state):
            return None
        return await self._start(state, pipeline)

    async def wait_idle(self, shadow_id: Path | str | None = None) -> None:
        """Wait until no timer is pending and no generation is outstanding."""
        loop = asyncio.get_running_loop()
        while True:
            if shadow_id is None:
                states = list(self._registry.values())
                tasks = set(self._tasks)
            else:
                state = self._registry.get(self._key(shadow_id))
                states = [state] if state is not None else []
                running = self._outstanding_task(self._key(shadow_id))
                tasks = {running} if running is not None else set()
            if tasks:
                await asyncio.wait(tasks)
                continue
            timers = [s.pending_trigger for s in states if s.pending_trigger is not None]
            if not timers:
                return
            delay = max(0.0, min(timer.when() for timer in timers) - loop.time())
            await asyncio.sleep(delay + 0.001)

    # ------------------------------------------------------------------
    # Helpers

    def _is_current(self, state: ShadowFileState) -> bool:
        return self._registry.get(state.shadow_id) is state and not state.stopped

    @staticmethod
    def _key(shadow_id: Path | str) -> str:
        return str(Path(shadow_id).resolve())

    def _relative(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.workspace_root))
        except ValueError:
            return str(path)


__all__ = ["ChangeSource", "GenerationScheduler"]
