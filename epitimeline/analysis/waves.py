"""Per-region average daily new cases over named historical waves."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from epitimeline.analysis.aggregator import AggregatedSeries
from epitimeline.models import WaveWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaveAverage:
    window: WaveWindow
    values: dict[str, float]
    max_value: float
    dates_covered: int

    @property
    def label(self) -> str:
        return self.window.label


def average_window(series: AggregatedSeries, window: WaveWindow) -> WaveAverage:
    """Average each region's daily deltas over the window dates it reports on.

    No zero-fill: a region seen on 3 of 90 window dates is averaged over 3.
    Regions with no entries in the window are left out.
    """
    sums: dict[str, int] = {}
    counts: dict[str, int] = {}
    covered = 0

    for day in series.dates:
        if not window.contains(day):
            continue
        covered += 1
        for region_key, delta in series.daily.get(day, {}).items():
            sums[region_key] = sums.get(region_key, 0) + delta
            counts[region_key] = counts.get(region_key, 0) + 1

    values = {key: total / counts[key] for key, total in sums.items()}
    max_value = max(values.values(), default=0.0)
    return WaveAverage(
        window=window,
        values=values,
        max_value=max(max_value, 0.0),
        dates_covered=covered,
    )


def compute_wave_averages(
    series: AggregatedSeries,
    windows: Sequence[WaveWindow],
) -> list[WaveAverage]:
    """One WaveAverage per window, in window order."""
    results = [average_window(series, w) for w in windows]
    for r in results:
        if not r.dates_covered:
            logger.info("Wave %r has no dates on the axis", r.label)
        else:
            logger.debug(
                "Wave %r: %d dates, %d regions, max avg %.1f",
                r.label, r.dates_covered, len(r.values), r.max_value,
            )
    return results
