"""Tests for wave averages."""

from datetime import date

import pytest

from epitimeline.analysis.aggregator import aggregate
from epitimeline.analysis.waves import average_window, compute_wave_averages
from epitimeline.config import DEFAULT_WAVES
from epitimeline.models import Observation, WaveWindow

SUMMER = WaveWindow(label="Summer 2020 Surge", start=date(2020, 6, 1), end=date(2020, 9, 30))


@pytest.fixture()
def wave_series():
    return aggregate([
        Observation(date(2020, 6, 1), "00001", 10),
        Observation(date(2020, 6, 2), "00001", 20),
        Observation(date(2020, 6, 3), "00001", 35),
        Observation(date(2020, 5, 31), "00002", 1),
        Observation(date(2020, 6, 3), "00002", 5),
        Observation(date(2020, 5, 1), "00003", 7),
    ])


class TestAverageWindow:
    def test_single_observation_not_imputed(self):
        series = aggregate([Observation(date(2020, 6, 1), "00002", 100)])
        wave = average_window(series, SUMMER)
        assert wave.values == {"00002": 0.0}

    def test_averages_over_observed_dates_only(self, wave_series):
        wave = average_window(wave_series, SUMMER)
        assert wave.values["00001"] == pytest.approx(25 / 3)
        # one entry in the window (delta 4), not spread over 3 window dates
        assert wave.values["00002"] == pytest.approx(4.0)

    def test_uncovered_region_absent(self, wave_series):
        wave = average_window(wave_series, SUMMER)
        assert "00003" not in wave.values

    def test_dates_covered_and_max(self, wave_series):
        wave = average_window(wave_series, SUMMER)
        assert wave.dates_covered == 3
        assert wave.max_value == pytest.approx(25 / 3)

    def test_empty_window(self, wave_series):
        winter = WaveWindow(label="Winter", start=date(2020, 11, 1), end=date(2021, 1, 31))
        wave = average_window(wave_series, winter)
        assert wave.values == {}
        assert wave.dates_covered == 0
        assert wave.max_value == 0.0

    def test_inclusive_bounds(self, wave_series):
        window = WaveWindow(label="edge", start=date(2020, 5, 31), end=date(2020, 6, 1))
        wave = average_window(wave_series, window)
        assert wave.dates_covered == 2
        assert wave.values == {"00001": 0.0, "00002": 0.0}


class TestComputeWaveAverages:
    def test_window_order(self, wave_series):
        waves = compute_wave_averages(wave_series, DEFAULT_WAVES)
        assert [w.label for w in waves] == [
            "Spring 2020 Surge", "Summer 2020 Surge", "Winter 2020 Surge",
        ]
        assert "00003" in waves[0].values
        assert waves[2].values == {}

    def test_window_rejects_reversed_dates(self):
        with pytest.raises(ValueError):
            WaveWindow(label="bad", start=date(2020, 2, 1), end=date(2020, 1, 1))
