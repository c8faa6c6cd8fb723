"""Shared test fixtures for epitimeline tests."""

import pytest

from epitimeline.analysis.aggregator import aggregate
from epitimeline.config import Config, PlaybackConfig
from epitimeline.ingest.normalizer import normalize_rows
from epitimeline.playback.scheduler import ManualScheduler


def _rows(fips: str, start_day: int, counts: list[int]) -> list[dict[str, str]]:
    return [
        {"date": f"2020-03-{start_day + i:02d}", "county": "x", "fips": fips, "cases": str(c)}
        for i, c in enumerate(counts)
    ]


@pytest.fixture()
def county_rows():
    """Raw NYT-style rows: 3 clean counties, one revision, 3 malformed rows.

    Axis runs 2020-03-10 .. 2020-03-19 (10 dates).
    """
    rows: list[dict[str, str]] = []
    rows += _rows("1001", 10, [1, 3, 3, 6, 10, 15, 15, 21, 28, 36])   # unpadded
    rows += _rows("06037", 12, [5, 12, 20, 18, 25, 40, 52, 70])       # 3/15 revised down
    rows += _rows("53033", 10, [2, 4])
    rows += [
        {"date": "2020-03-12", "county": "Unknown", "fips": "", "cases": "3"},
        {"date": "03/12/2020", "county": "x", "fips": "01003", "cases": "1"},
        {"date": "2020-03-13", "county": "x", "fips": "01003", "cases": "n/a"},
    ]
    # arrive unsorted, like the raw file sorted by something else
    return list(reversed(rows))


@pytest.fixture()
def series(county_rows):
    return aggregate(normalize_rows(county_rows).observations)


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def config():
    """Defaults, with a tick interval that is exact in binary floating point."""
    return Config(
        cases_csv="/tmp/does-not-exist.csv",
        playback=PlaybackConfig(base_interval_ms=250),
    )
