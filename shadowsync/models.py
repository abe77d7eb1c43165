"""Core data models shared across shadowsync components."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Set


class GenerationPhase(enum.Enum):
    """Lifecycle phase of a watched shadow file."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    GENERATING = "generating"
    STOPPED = "stopped"


@dataclass
class ShadowFileState:
    """Runtime state for a single watched shadow file."""

    shadow_id: str
    target_id: str
    language_tag: str
    last_checkpoint: str = ""
    in_flight: bool = False
    pending_trigger: Optional[asyncio.TimerHandle] = None
    phase: GenerationPhase = GenerationPhase.IDLE
    detach_listener: Optional[Callable[[], None]] = field(default=None, repr=False)
    task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)

    @property
    def shadow_path(self) -> Path:
        return Path(self.shadow_id)

    @property
    def target_path(self) -> Path:
        return Path(self.target_id)

    @property
    def stopped(self) -> bool:
        return self.phase is GenerationPhase.STOPPED


@dataclass
class DependencyManifest:
    """Declared dependencies parsed from a project manifest."""

    name: Optional[str]
    path: Path
    declared: Set[str] = field(default_factory=set)
    scopes: Dict[str, Set[str]] = field(default_factory=dict)

    def all_declared(self) -> Set[str]:
        names = set(self.declared)
        for values in self.scopes.values():
            names.update(values)
        if self.name:
            names.add(self.name)
        return names


@dataclass
class ConversionOutcome:
    """Result of a single pseudocode conversion round."""

    applied: bool
    output: str
    diff: str
    discarded: bool = False
