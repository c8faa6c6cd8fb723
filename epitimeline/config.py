"""Configuration loading for the epidemic timeline engine."""

from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from epitimeline.models import KeyStage, ViewMode, WaveWindow


class ColumnConfig(BaseModel):
    date: str = "date"
    region: str = "fips"
    count: str = "cases"


class AggregationConfig(BaseModel):
    rolling_window_days: int = Field(default=30, ge=1)
    region_key_width: int = Field(default=5, ge=1)
    # True: a region's first delta equals its first cumulative count instead of 0
    seed_first_delta: bool = False


class PlaybackConfig(BaseModel):
    base_interval_ms: int = Field(default=200, gt=0)
    default_speed: float = Field(default=1.0, gt=0)
    min_speed: float = Field(default=0.25, gt=0)
    max_speed: float = Field(default=8.0, gt=0)
    default_view_mode: ViewMode = ViewMode.DAILY


DEFAULT_WAVES: list[WaveWindow] = [
    WaveWindow(label="Spring 2020 Surge", start=date(2020, 3, 1), end=date(2020, 5, 31)),
    WaveWindow(label="Summer 2020 Surge", start=date(2020, 6, 1), end=date(2020, 9, 30)),
    WaveWindow(label="Winter 2020 Surge", start=date(2020, 11, 1), end=date(2021, 1, 31)),
]

DEFAULT_KEY_STAGES: list[KeyStage] = [
    KeyStage(
        date=date(2020, 3, 13),
        title="National emergency declared",
        description="Community spread is confirmed in dozens of states and a national emergency is declared.",
    ),
    KeyStage(
        date=date(2020, 7, 16),
        title="Summer surge peaks",
        description="Sun Belt counties drive daily counts to a new high as reopening outpaces testing.",
    ),
    KeyStage(
        date=date(2020, 12, 14),
        title="First vaccine doses",
        description="The first vaccine doses are administered while the winter wave is still climbing.",
    ),
    KeyStage(
        date=date(2021, 7, 1),
        title="Delta variant takes hold",
        description="The Delta variant becomes dominant and counties with low uptake light up again.",
    ),
    KeyStage(
        date=date(2021, 12, 20),
        title="Omicron wave",
        description="Omicron pushes daily counts far past every earlier peak within a few weeks.",
    ),
]


class Config(BaseModel):
    cases_csv: str = "data/us-counties.csv"
    features_path: str | None = None
    columns: ColumnConfig = Field(default_factory=ColumnConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    waves: list[WaveWindow] = Field(default_factory=lambda: list(DEFAULT_WAVES))
    key_stages: list[KeyStage] = Field(default_factory=lambda: list(DEFAULT_KEY_STAGES))

    @property
    def resolved_cases_csv(self) -> Path:
        """Resolve cases_csv relative to project root."""
        p = Path(self.cases_csv).expanduser()
        if p.is_absolute():
            return p
        return _project_root() / p

    @property
    def resolved_features_path(self) -> Path | None:
        if self.features_path is None:
            return None
        p = Path(self.features_path).expanduser()
        if p.is_absolute():
            return p
        return _project_root() / p


def _project_root() -> Path:
    """Return the epitimeline project root directory."""
    return Path(__file__).parent.parent


def load_config(config_path: Path | None = None) -> Config:
    """Load config from YAML file. Falls back to defaults if file missing."""
    if config_path is None:
        config_path = _project_root() / "config.yaml"

    if config_path.exists():
        raw: dict[str, Any] = yaml.safe_load(config_path.read_text()) or {}
        return Config(**raw)

    return Config()
