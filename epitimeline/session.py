"""One browsing session: the aggregated data plus the playback controller.

All mutable state lives on the ``TimelineSession`` instance the caller owns.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from epitimeline.analysis.aggregator import AggregatedSeries, aggregate
from epitimeline.analysis.key_stages import resolve_key_stages
from epitimeline.analysis.waves import compute_wave_averages
from epitimeline.config import Config
from epitimeline.ingest.normalizer import NormalizationResult, normalize_rows
from epitimeline.models import (
    Frame, KeyStage, PlaybackState, Scene, SceneKind, SidebarSummary, ViewMode,
)
from epitimeline.output.projector import ViewProjector
from epitimeline.output.sidebar import build_sidebar
from epitimeline.playback.controller import PlaybackController
from epitimeline.playback.scheduler import Scheduler

logger = logging.getLogger(__name__)

EXPLORE_LABEL = "Explore: use the slider below"


class TimelineSession:
    """Control surface for the UI layer.

    ``on_frame`` is called with a fresh Frame after every playback state
    change; ``on_stage_reached`` and ``on_stage_acknowledged`` bracket each
    narrative pause.
    """

    def __init__(
        self,
        series: AggregatedSeries,
        config: Config,
        scheduler: Scheduler,
        on_frame: Callable[[Frame], None] | None = None,
        on_stage_reached: Callable[[KeyStage], None] | None = None,
        on_stage_acknowledged: Callable[[], None] | None = None,
        normalization: NormalizationResult | None = None,
    ) -> None:
        self.series = series
        self.config = config
        self.normalization = normalization
        self.waves = compute_wave_averages(series, config.waves)
        self.stages = resolve_key_stages(config.key_stages, series.dates)
        self.projector = ViewProjector(series)
        self.on_frame = on_frame
        # 0..len(waves)-1 are wave scenes; len(waves) is explore
        self.scene_index = 0
        self.controller = PlaybackController(
            last_index=series.last_index,
            stages=self.stages,
            scheduler=scheduler,
            config=config.playback,
            on_change=self._handle_change,
            on_stage_reached=on_stage_reached,
            on_stage_acknowledged=on_stage_acknowledged,
        )

    # --- Control operations ---

    def play(self) -> None:
        self.controller.play()

    def pause(self) -> None:
        self.controller.pause()

    def toggle(self) -> None:
        self.controller.toggle()

    def seek(self, index: int) -> None:
        self.controller.seek(index)

    def set_speed(self, multiplier: float) -> None:
        self.controller.set_speed(multiplier)

    def set_view_mode(self, mode: ViewMode | str) -> None:
        self.controller.set_view_mode(mode)

    def acknowledge_stage(self) -> None:
        self.controller.acknowledge_stage()

    def close(self) -> None:
        self.controller.close()

    # --- Reads ---

    @property
    def state(self) -> PlaybackState:
        return self.controller.state

    def current_frame(self) -> Frame:
        return self.projector.project(self.controller.current_index, self.controller.view_mode)

    def sidebar(self, top_n: int = 5) -> SidebarSummary:
        active = self.controller.active_stage
        return build_sidebar(
            self.series,
            self.controller.current_index,
            self.controller.view_mode,
            stage=active.stage if active else None,
            top_n=top_n,
        )

    # --- Scenes ---

    @property
    def scene(self) -> Scene:
        n = len(self.waves)
        i = self.scene_index
        if i < n:
            return Scene(
                index=i,
                kind=SceneKind.WAVE,
                label=self.waves[i].label,
                next_label="Next" if i < n - 1 else "Explore",
            )
        return Scene(index=n, kind=SceneKind.EXPLORE, label=EXPLORE_LABEL, next_label=None)

    def scene_frame(self) -> Frame:
        """The wave average for a wave scene, the playback frame in explore."""
        if self.scene_index < len(self.waves):
            return self.projector.project_wave(self.waves[self.scene_index])
        return self.current_frame()

    def next_scene(self) -> Scene:
        """Step to the next wave scene. Stays in explore once there."""
        self.scene_index = min(self.scene_index + 1, len(self.waves))
        scene = self.scene
        logger.debug("Scene %d: %s", scene.index, scene.label)
        if self.on_frame is not None:
            self.on_frame(self.scene_frame())
        return scene

    def _handle_change(self, state: PlaybackState) -> None:
        if self.on_frame is not None:
            self.on_frame(self.projector.project(state.current_index, state.view_mode))


def build_series(rows: Iterable[Mapping[str, Any]], config: Config) -> tuple[AggregatedSeries, NormalizationResult]:
    """Normalize and aggregate. Raises DataError if nothing survives."""
    normalized = normalize_rows(
        rows, columns=config.columns, key_width=config.aggregation.region_key_width,
    )
    series = aggregate(
        normalized.observations,
        rolling_window=config.aggregation.rolling_window_days,
        seed_first_delta=config.aggregation.seed_first_delta,
    )
    return series, normalized


def build_session(
    rows: Iterable[Mapping[str, Any]],
    config: Config,
    scheduler: Scheduler,
    **callbacks: Any,
) -> TimelineSession:
    """Run the full pipeline and return a session ready to play."""
    series, normalized = build_series(rows, config)
    session = TimelineSession(series, config, scheduler, normalization=normalized, **callbacks)
    logger.info(
        "Session ready: %d dates, %d regions, %d waves, %d key stages",
        len(series.dates), len(series.regions), len(session.waves), len(session.stages),
    )
    return session
