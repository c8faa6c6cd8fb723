"""Shared models for the epidemic timeline engine."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class ViewMode(str, Enum):
    DAILY = "daily"
    CUMULATIVE = "cumulative"


class PlaybackStatus(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED_AT_STAGE = "paused_at_stage"


class ScaleKind(str, Enum):
    LINEAR = "linear"
    LOG = "log"


class SceneKind(str, Enum):
    WAVE = "wave"
    EXPLORE = "explore"


# --- Narrative / window models (loaded from config) ---


class WaveWindow(BaseModel):
    """A named historical interval, closed on both ends."""
    label: str
    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self) -> "WaveWindow":
        if self.end < self.start:
            raise ValueError(f"Wave {self.label!r} ends before it starts")
        return self

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class KeyStage(BaseModel):
    """A narrative milestone that pauses playback the first time it is reached."""
    date: date
    title: str
    description: str = ""


# --- Aggregation records ---


@dataclass(frozen=True)
class Observation:
    """One normalized cumulative count for a region on a date."""
    date: date
    region_key: str
    cumulative_count: int


@dataclass(frozen=True)
class ResolvedStage:
    """A key stage pinned to a position on the date axis.

    ``position`` is the stage's index in the declared stage list and is the
    identity used for the shown-once bookkeeping.
    """
    position: int
    stage: KeyStage
    index: int


@dataclass
class PlaybackState:
    current_index: int = 0
    status: PlaybackStatus = PlaybackStatus.STOPPED
    speed_multiplier: float = 1.0
    view_mode: ViewMode = ViewMode.DAILY
    active_stage_index: int | None = None  # position into the key stage list
    resume_after_stage: bool = False
    shown_stages: set[int] = field(default_factory=set)

    @property
    def is_playing(self) -> bool:
        return self.status == PlaybackStatus.PLAYING


@dataclass(frozen=True)
class Frame:
    """Everything a renderer needs to paint one date."""
    date_label: str
    values: Mapping[str, float]
    max_value: float
    view_mode: ViewMode
    scale: ScaleKind = ScaleKind.LINEAR


@dataclass(frozen=True)
class Scene:
    """One step of the guided tour: a wave scene, then explore."""
    index: int
    kind: SceneKind
    label: str
    next_label: str | None  # button text; None once exploring


# --- Output models ---


class RegionValue(BaseModel):
    region_key: str
    value: float


class SidebarSummary(BaseModel):
    date_label: str
    view_mode: ViewMode
    total_new_cases: int = 0
    total_rolling: int = 0
    total_cumulative: int = 0
    reporting_regions: int = 0
    top_regions: list[RegionValue] = Field(default_factory=list)
    stage_title: str | None = None
    stage_description: str | None = None
