"""Playback state machine: position, autoplay, speed, view mode, key-stage pauses.

States:

    STOPPED ──play──▶ PLAYING ──tick lands on unshown stage──▶ PAUSED_AT_STAGE
       ▲                 │                                       │
       └──pause/seek/end─┘◀──────────acknowledge (resume)────────┘

Every transition ends with ``on_change`` receiving a copy of the state. No
operation raises once the controller exists: seeks and speeds are clamped.
"""

import dataclasses
import logging
import math
from collections import defaultdict
from collections.abc import Callable, Sequence

from epitimeline.config import PlaybackConfig
from epitimeline.models import KeyStage, PlaybackState, PlaybackStatus, ResolvedStage, ViewMode
from epitimeline.playback.scheduler import Scheduler, TickTimer

logger = logging.getLogger(__name__)

StateCallback = Callable[[PlaybackState], None]


class PlaybackController:
    """Owns PlaybackState and the single autoplay timer."""

    def __init__(
        self,
        last_index: int,
        stages: Sequence[ResolvedStage],
        scheduler: Scheduler,
        config: PlaybackConfig | None = None,
        on_change: StateCallback | None = None,
        on_stage_reached: Callable[[KeyStage], None] | None = None,
        on_stage_acknowledged: Callable[[], None] | None = None,
    ) -> None:
        self.config = config or PlaybackConfig()
        self._last_index = max(last_index, 0)
        self._stages = {rs.position: rs for rs in stages}
        self._stages_at: dict[int, list[ResolvedStage]] = defaultdict(list)
        for rs in stages:
            self._stages_at[rs.index].append(rs)

        self._state = PlaybackState(
            speed_multiplier=self._clamp_speed(self.config.default_speed),
            view_mode=self.config.default_view_mode,
        )
        self._timer = TickTimer(scheduler)
        self._closed = False

        self.on_change = on_change
        self.on_stage_reached = on_stage_reached
        self.on_stage_acknowledged = on_stage_acknowledged

    # --- Read access ---

    @property
    def state(self) -> PlaybackState:
        """A copy of the current state."""
        return dataclasses.replace(self._state, shown_stages=set(self._state.shown_stages))

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    @property
    def current_index(self) -> int:
        return self._state.current_index

    @property
    def view_mode(self) -> ViewMode:
        return self._state.view_mode

    @property
    def last_index(self) -> int:
        return self._last_index

    @property
    def tick_interval(self) -> float:
        """Seconds between autoplay ticks at the current speed."""
        return self.config.base_interval_ms / 1000.0 / self._state.speed_multiplier

    @property
    def active_stage(self) -> ResolvedStage | None:
        pos = self._state.active_stage_index
        return self._stages.get(pos) if pos is not None else None

    @property
    def timer_active(self) -> bool:
        return self._timer.active

    @property
    def ticks_fired(self) -> int:
        return self._timer.ticks_fired

    # --- Control operations ---

    def play(self) -> None:
        if self._closed:
            return
        s = self._state
        if s.status == PlaybackStatus.PAUSED_AT_STAGE:
            # the interlock holds; just remember to resume afterwards
            s.resume_after_stage = True
            return
        if self._last_index == 0:
            logger.debug("Single-date axis; nothing to play")
            return
        if s.current_index >= self._last_index:
            s.current_index = 0
        # a stage resolved to the starting date opens before the first tick
        reached = self._enter_stage(resume=True)
        if reached is not None:
            self._emit()
            self._notify_stage(reached)
            return
        self._timer.start(self.tick_interval, self._tick)
        s.status = PlaybackStatus.PLAYING
        self._emit()

    def pause(self) -> None:
        """Stop autoplay and dismiss any open stage. Keeps the position."""
        self._timer.cancel()
        s = self._state
        if s.status == PlaybackStatus.STOPPED:
            return
        if s.status == PlaybackStatus.PAUSED_AT_STAGE:
            self._dismiss_stage()
        s.status = PlaybackStatus.STOPPED
        self._emit()

    stop = pause

    def toggle(self) -> None:
        s = self._state
        if s.status == PlaybackStatus.PLAYING or (
            s.status == PlaybackStatus.PAUSED_AT_STAGE and s.resume_after_stage
        ):
            self.pause()
        else:
            self.play()

    def seek(self, index: int) -> None:
        """Manual scrub. Always stops autoplay; may open an unshown stage."""
        if self._closed:
            return
        self._timer.cancel()
        s = self._state
        if s.status == PlaybackStatus.PAUSED_AT_STAGE:
            self._dismiss_stage()
        s.status = PlaybackStatus.STOPPED
        s.current_index = min(max(int(index), 0), self._last_index)
        reached = self._enter_stage(resume=False)
        self._emit()
        if reached is not None:
            self._notify_stage(reached)

    def set_speed(self, multiplier: float) -> None:
        if math.isnan(multiplier):
            return
        speed = self._clamp_speed(multiplier)
        s = self._state
        if speed == s.speed_multiplier:
            return
        s.speed_multiplier = speed
        if s.status == PlaybackStatus.PLAYING:
            self._timer.start(self.tick_interval, self._tick)
        self._emit()

    def set_view_mode(self, mode: ViewMode | str) -> None:
        mode = ViewMode(mode)
        if mode == self._state.view_mode:
            return
        self._state.view_mode = mode
        self._emit()

    def acknowledge_stage(self) -> None:
        s = self._state
        if s.status != PlaybackStatus.PAUSED_AT_STAGE:
            return
        resume = s.resume_after_stage
        self._dismiss_stage()

        # another stage may resolve to the same date
        reached = self._enter_stage(resume=resume)
        if reached is not None:
            self._emit()
            self._notify_stage(reached)
            return

        if resume and s.current_index < self._last_index and not self._closed:
            s.status = PlaybackStatus.PLAYING
            self._timer.start(self.tick_interval, self._tick)
        else:
            s.status = PlaybackStatus.STOPPED
        self._emit()

    def close(self) -> None:
        """Cancel the pending tick. The controller stays readable."""
        self._timer.cancel()
        self._closed = True
        self._state.status = PlaybackStatus.STOPPED
        self._state.active_stage_index = None

    # --- Internals ---

    def _tick(self) -> None:
        s = self._state
        if s.status != PlaybackStatus.PLAYING:
            self._timer.cancel()
            return
        if s.current_index >= self._last_index:
            self._timer.cancel()
            s.status = PlaybackStatus.STOPPED
            self._emit()
            return

        s.current_index += 1
        reached = self._enter_stage(resume=True)
        if reached is not None:
            self._timer.cancel()
            self._emit()
            self._notify_stage(reached)
            return

        if s.current_index >= self._last_index:
            self._timer.cancel()
            s.status = PlaybackStatus.STOPPED
            logger.debug("Reached end of axis at index %d", s.current_index)
        self._emit()

    def _enter_stage(self, resume: bool) -> ResolvedStage | None:
        s = self._state
        for rs in self._stages_at.get(s.current_index, ()):
            if rs.position in s.shown_stages:
                continue
            s.shown_stages.add(rs.position)
            s.status = PlaybackStatus.PAUSED_AT_STAGE
            s.active_stage_index = rs.position
            s.resume_after_stage = resume
            logger.info("Key stage reached: %s (index %d)", rs.stage.title, rs.index)
            return rs
        return None

    def _dismiss_stage(self) -> None:
        self._state.active_stage_index = None
        self._state.resume_after_stage = False
        if self.on_stage_acknowledged is not None:
            self.on_stage_acknowledged()

    def _notify_stage(self, rs: ResolvedStage) -> None:
        if self.on_stage_reached is not None:
            self.on_stage_reached(rs.stage)

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)

    def _clamp_speed(self, multiplier: float) -> float:
        return min(max(float(multiplier), self.config.min_speed), self.config.max_speed)
