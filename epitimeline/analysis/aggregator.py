"""Turn per-county cumulative counts into per-date metric maps.

Every derived map is keyed by date, then by region key. A region only appears
in a date's map if it has an observation on that date; callers treat an
absent key as zero.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from epitimeline.models import Observation

logger = logging.getLogger(__name__)

DEFAULT_ROLLING_WINDOW = 30

MetricMap = dict[str, int]


class DataError(ValueError):
    """No usable observations: there is nothing to index."""


@dataclass
class AggregatedSeries:
    """Date axis plus the date-indexed maps built from it. Read-only after build."""
    dates: tuple[date, ...]
    daily: dict[date, MetricMap]
    cumulative: dict[date, MetricMap]
    rolling: dict[date, MetricMap]
    global_max: int
    cumulative_max: int
    rolling_max: int
    regions: frozenset[str]
    rolling_window: int = DEFAULT_ROLLING_WINDOW
    _positions: dict[date, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._positions = {d: i for i, d in enumerate(self.dates)}

    @property
    def last_index(self) -> int:
        return len(self.dates) - 1

    def index_of(self, day: date) -> int | None:
        return self._positions.get(day)

    def date_label(self, index: int) -> str:
        return self.dates[index].isoformat()

    def __repr__(self) -> str:
        first = self.dates[0] if self.dates else "?"
        last = self.dates[-1] if self.dates else "?"
        return (
            f"AggregatedSeries({len(self.dates)} dates {first}..{last}, "
            f"{len(self.regions)} regions, global_max={self.global_max}, "
            f"cumulative_max={self.cumulative_max})"
        )


def _group_by_region(observations: Iterable[Observation]) -> dict[str, list[Observation]]:
    by_region: dict[str, list[Observation]] = defaultdict(list)
    for obs in observations:
        by_region[obs.region_key].append(obs)
    for seq in by_region.values():
        # list.sort is stable, so same-date rows keep arrival order
        seq.sort(key=lambda o: o.date)
    return by_region


def region_deltas(counts: list[int], seed_first_delta: bool = False) -> list[int]:
    """Daily deltas of a cumulative series. Decreases stay negative."""
    deltas: list[int] = []
    for i, count in enumerate(counts):
        if i == 0:
            deltas.append(count if seed_first_delta else 0)
        else:
            deltas.append(count - counts[i - 1])
    return deltas


def trailing_sums(deltas: list[int], window: int) -> list[int]:
    """Sum of deltas over positions [i - window + 1, i], clipped at 0."""
    prefix = [0]
    for d in deltas:
        prefix.append(prefix[-1] + d)
    return [prefix[i + 1] - prefix[max(0, i - window + 1)] for i in range(len(deltas))]


def aggregate(
    observations: Iterable[Observation],
    rolling_window: int = DEFAULT_ROLLING_WINDOW,
    seed_first_delta: bool = False,
) -> AggregatedSeries:
    """Build the date axis and the daily, cumulative and rolling maps.

    Raises DataError if there are no observations at all.
    """
    by_region = _group_by_region(observations)
    if not by_region:
        raise DataError("No valid observations remain after normalization")

    daily: dict[date, MetricMap] = defaultdict(dict)
    cumulative: dict[date, MetricMap] = defaultdict(dict)
    rolling: dict[date, MetricMap] = defaultdict(dict)
    duplicates = 0
    revisions = 0

    for region_key, seq in by_region.items():
        counts = [o.cumulative_count for o in seq]
        deltas = region_deltas(counts, seed_first_delta=seed_first_delta)
        sums = trailing_sums(deltas, rolling_window)

        for i, obs in enumerate(seq):
            if i > 0 and seq[i - 1].date == obs.date:
                duplicates += 1
            if deltas[i] < 0:
                revisions += 1
            # later arrivals overwrite earlier ones on a duplicate date
            daily[obs.date][region_key] = deltas[i]
            cumulative[obs.date][region_key] = obs.cumulative_count
            rolling[obs.date][region_key] = sums[i]

    if duplicates:
        logger.warning("%d duplicate (region, date) observations; later rows win", duplicates)
    if revisions:
        logger.info("%d negative daily deltas from source revisions kept as-is", revisions)

    dates = tuple(sorted(daily))

    series = AggregatedSeries(
        dates=dates,
        daily=dict(daily),
        cumulative=dict(cumulative),
        rolling=dict(rolling),
        global_max=_max_value(daily.values()),
        cumulative_max=_max_value(cumulative.values()),
        rolling_max=_max_value(rolling.values()),
        regions=frozenset(by_region),
        rolling_window=rolling_window,
    )
    logger.info("Aggregation complete: %s", series)
    return series


def _max_value(maps: Iterable[MetricMap]) -> int:
    """Largest value across maps, floored at 0 so it can bound a color domain."""
    best = 0
    for m in maps:
        if m:
            best = max(best, max(m.values()))
    return best
