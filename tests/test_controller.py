"""Tests for the playback state machine."""

from datetime import date

import pytest

from epitimeline.config import PlaybackConfig
from epitimeline.models import KeyStage, PlaybackStatus, ResolvedStage, ViewMode
from epitimeline.playback.controller import PlaybackController

STAGE_A = KeyStage(date=date(2020, 3, 13), title="A")
STAGE_B = KeyStage(date=date(2020, 3, 13), title="B")


class Recorder:
    def __init__(self):
        self.states = []
        self.reached = []
        self.acknowledged = 0

    def on_change(self, state):
        self.states.append(state)

    def on_stage_reached(self, stage):
        self.reached.append(stage.title)

    def on_stage_acknowledged(self):
        self.acknowledged += 1


@pytest.fixture()
def recorder():
    return Recorder()


def _controller(scheduler, recorder, last_index=20, stages=()):
    return PlaybackController(
        last_index=last_index,
        stages=list(stages),
        scheduler=scheduler,
        config=PlaybackConfig(base_interval_ms=250),
        on_change=recorder.on_change,
        on_stage_reached=recorder.on_stage_reached,
        on_stage_acknowledged=recorder.on_stage_acknowledged,
    )


class TestPlay:
    def test_initial_state(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        state = ctrl.state
        assert state.current_index == 0
        assert state.status == PlaybackStatus.STOPPED
        assert not state.is_playing
        assert state.speed_multiplier == 1.0
        assert state.view_mode == ViewMode.DAILY
        assert state.active_stage_index is None

    def test_ticks_advance(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.play()
        assert ctrl.status == PlaybackStatus.PLAYING
        scheduler.advance(1.0)
        assert ctrl.current_index == 4

    def test_play_twice_single_stream(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.play()
        ctrl.play()
        scheduler.advance(1.0)
        assert ctrl.ticks_fired == 4
        assert ctrl.current_index == 4
        assert scheduler.pending == 1

    def test_stops_at_end(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, last_index=3)
        ctrl.play()
        scheduler.advance(2.0)
        assert ctrl.current_index == 3
        assert ctrl.status == PlaybackStatus.STOPPED
        assert not ctrl.timer_active
        assert scheduler.pending == 0
        assert recorder.states[-1].status == PlaybackStatus.STOPPED

    def test_play_at_end_rewinds(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, last_index=3)
        ctrl.seek(3)
        ctrl.play()
        assert ctrl.current_index == 0
        assert ctrl.status == PlaybackStatus.PLAYING

    def test_single_date_axis(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, last_index=0)
        ctrl.play()
        assert ctrl.status == PlaybackStatus.STOPPED
        assert scheduler.pending == 0

    def test_pause_keeps_index(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.play()
        scheduler.advance(0.5)
        ctrl.pause()
        scheduler.advance(1.0)
        assert ctrl.current_index == 2
        assert ctrl.status == PlaybackStatus.STOPPED
        assert scheduler.pending == 0

    def test_toggle(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.toggle()
        assert ctrl.status == PlaybackStatus.PLAYING
        ctrl.toggle()
        assert ctrl.status == PlaybackStatus.STOPPED


class TestSeek:
    def test_clamps(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, last_index=5)
        ctrl.seek(99)
        assert ctrl.current_index == 5
        ctrl.seek(-3)
        assert ctrl.current_index == 0

    def test_scrub_stops_autoplay(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.play()
        scheduler.advance(0.5)
        ctrl.seek(10)
        assert ctrl.status == PlaybackStatus.STOPPED
        scheduler.advance(1.0)
        assert ctrl.current_index == 10
        assert scheduler.pending == 0

    def test_emits_state(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.seek(7)
        assert recorder.states[-1].current_index == 7


class TestSpeed:
    def test_rederives_interval_without_losing_index(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.play()
        scheduler.advance(0.5)
        assert ctrl.current_index == 2
        ctrl.set_speed(2.0)
        assert ctrl.current_index == 2
        assert ctrl.tick_interval == 0.125
        scheduler.advance(0.25)
        assert ctrl.current_index == 4
        assert scheduler.pending == 1

    @pytest.mark.parametrize("requested,expected", [(100, 8.0), (0, 0.25), (-2, 0.25), (2, 2.0)])
    def test_clamped(self, scheduler, recorder, requested, expected):
        ctrl = _controller(scheduler, recorder)
        ctrl.set_speed(requested)
        assert ctrl.state.speed_multiplier == expected

    def test_nan_ignored(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.set_speed(float("nan"))
        assert ctrl.state.speed_multiplier == 1.0

    def test_speed_while_stopped_does_not_start(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.set_speed(4.0)
        assert ctrl.status == PlaybackStatus.STOPPED
        assert scheduler.pending == 0


class TestViewMode:
    def test_does_not_touch_playback(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.play()
        scheduler.advance(0.5)
        ctrl.set_view_mode("cumulative")
        assert ctrl.view_mode == ViewMode.CUMULATIVE
        assert ctrl.status == PlaybackStatus.PLAYING
        assert ctrl.current_index == 2
        scheduler.advance(0.25)
        assert ctrl.current_index == 3

    def test_emits_on_change_only(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.set_view_mode(ViewMode.DAILY)
        assert recorder.states == []
        ctrl.set_view_mode(ViewMode.CUMULATIVE)
        assert recorder.states[-1].view_mode == ViewMode.CUMULATIVE


class TestKeyStages:
    def _stages(self):
        return [ResolvedStage(position=0, stage=STAGE_A, index=3)]

    def test_autoplay_pauses_at_stage(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, stages=self._stages())
        ctrl.play()
        scheduler.advance(0.75)
        assert ctrl.current_index == 3
        assert ctrl.status == PlaybackStatus.PAUSED_AT_STAGE
        assert ctrl.active_stage.stage.title == "A"
        assert recorder.reached == ["A"]
        assert not ctrl.timer_active

        # ticks are not queued while paused
        scheduler.advance(2.0)
        assert ctrl.current_index == 3

    def test_acknowledge_resumes_from_same_index(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, stages=self._stages())
        ctrl.play()
        scheduler.advance(0.75)
        ctrl.acknowledge_stage()
        assert recorder.acknowledged == 1
        assert ctrl.status == PlaybackStatus.PLAYING
        assert ctrl.state.active_stage_index is None
        scheduler.advance(0.25)
        assert ctrl.current_index == 4

    def test_shown_once_per_session(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, stages=self._stages())
        ctrl.seek(3)
        assert ctrl.status == PlaybackStatus.PAUSED_AT_STAGE
        ctrl.acknowledge_stage()
        assert ctrl.status == PlaybackStatus.STOPPED

        for idx in (0, 3, 5, 3, 2, 3):
            ctrl.seek(idx)
        assert recorder.reached == ["A"]
        assert ctrl.status == PlaybackStatus.STOPPED

        ctrl.seek(0)
        ctrl.play()
        scheduler.advance(1.5)
        assert recorder.reached == ["A"]
        assert ctrl.current_index == 6

    def test_seek_away_dismisses_stage(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, stages=self._stages())
        ctrl.seek(3)
        ctrl.seek(8)
        assert recorder.acknowledged == 1
        assert ctrl.status == PlaybackStatus.STOPPED
        assert ctrl.active_stage is None

    def test_play_during_stage_resumes_after_ack(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, stages=self._stages())
        ctrl.seek(3)
        ctrl.play()
        assert ctrl.status == PlaybackStatus.PAUSED_AT_STAGE
        assert scheduler.pending == 0
        ctrl.acknowledge_stage()
        assert ctrl.status == PlaybackStatus.PLAYING

    def test_pause_during_stage_dismisses(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, stages=self._stages())
        ctrl.play()
        scheduler.advance(0.75)
        ctrl.pause()
        assert ctrl.status == PlaybackStatus.STOPPED
        assert recorder.acknowledged == 1

    def test_acknowledge_without_stage_is_noop(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder, stages=self._stages())
        ctrl.acknowledge_stage()
        assert recorder.acknowledged == 0
        assert recorder.states == []

    def test_stages_sharing_an_index_shown_in_turn(self, scheduler, recorder):
        stages = [
            ResolvedStage(position=0, stage=STAGE_A, index=2),
            ResolvedStage(position=1, stage=STAGE_B, index=2),
        ]
        ctrl = _controller(scheduler, recorder, stages=stages)
        ctrl.play()
        scheduler.advance(0.5)
        assert recorder.reached == ["A"]
        ctrl.acknowledge_stage()
        assert recorder.reached == ["A", "B"]
        assert ctrl.status == PlaybackStatus.PAUSED_AT_STAGE
        ctrl.acknowledge_stage()
        assert ctrl.status == PlaybackStatus.PLAYING

    def test_stage_on_first_index_opens_on_play(self, scheduler, recorder):
        stages = [ResolvedStage(position=0, stage=STAGE_A, index=0)]
        ctrl = _controller(scheduler, recorder, last_index=4, stages=stages)
        ctrl.play()
        assert recorder.reached == ["A"]
        assert ctrl.status == PlaybackStatus.PAUSED_AT_STAGE
        assert ctrl.current_index == 0
        assert scheduler.pending == 0

        ctrl.acknowledge_stage()
        assert ctrl.status == PlaybackStatus.PLAYING
        scheduler.advance(5.0)
        assert ctrl.current_index == 4
        assert recorder.reached == ["A"]

    def test_stage_on_first_index_opens_after_rewind(self, scheduler, recorder):
        stages = [ResolvedStage(position=0, stage=STAGE_A, index=0)]
        ctrl = _controller(scheduler, recorder, last_index=4, stages=stages)
        ctrl.seek(4)
        ctrl.play()
        assert ctrl.current_index == 0
        assert recorder.reached == ["A"]
        assert ctrl.status == PlaybackStatus.PAUSED_AT_STAGE

    def test_stage_on_last_index_stops_after_ack(self, scheduler, recorder):
        stages = [ResolvedStage(position=0, stage=STAGE_A, index=3)]
        ctrl = _controller(scheduler, recorder, last_index=3, stages=stages)
        ctrl.play()
        scheduler.advance(0.75)
        assert ctrl.status == PlaybackStatus.PAUSED_AT_STAGE
        ctrl.acknowledge_stage()
        assert ctrl.status == PlaybackStatus.STOPPED
        assert scheduler.pending == 0


class TestClose:
    def test_cancels_pending_tick(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.play()
        ctrl.close()
        assert not ctrl.timer_active
        assert scheduler.pending == 0
        scheduler.advance(2.0)
        assert ctrl.current_index == 0

    def test_play_after_close_is_noop(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        ctrl.close()
        ctrl.play()
        assert ctrl.status == PlaybackStatus.STOPPED
        assert scheduler.pending == 0


class TestStateCopy:
    def test_state_is_a_copy(self, scheduler, recorder):
        ctrl = _controller(scheduler, recorder)
        state = ctrl.state
        state.current_index = 9
        state.shown_stages.add(4)
        assert ctrl.current_index == 0
        assert ctrl.state.shown_stages == set()
