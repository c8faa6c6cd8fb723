"""Project the aggregated series onto one date and view mode."""

from types import MappingProxyType

from epitimeline.analysis.aggregator import AggregatedSeries
from epitimeline.analysis.waves import WaveAverage
from epitimeline.models import Frame, ScaleKind, ViewMode

_EMPTY: MappingProxyType = MappingProxyType({})


class ViewProjector:
    """Stateless reader over an AggregatedSeries. Never raises on lookup."""

    def __init__(self, series: AggregatedSeries) -> None:
        self.series = series

    def project(self, index: int, mode: ViewMode) -> Frame:
        mode = ViewMode(mode)
        if mode == ViewMode.CUMULATIVE:
            maps, bound, scale = self.series.cumulative, self.series.cumulative_max, ScaleKind.LOG
        else:
            maps, bound, scale = self.series.daily, self.series.global_max, ScaleKind.LINEAR
        label, values = self._lookup(maps, index)
        return Frame(date_label=label, values=values, max_value=bound, view_mode=mode, scale=scale)

    def project_rolling(self, index: int) -> Frame:
        """30-day trailing sums, shown alongside the daily view."""
        label, values = self._lookup(self.series.rolling, index)
        return Frame(
            date_label=label,
            values=values,
            max_value=self.series.rolling_max,
            view_mode=ViewMode.DAILY,
        )

    def project_wave(self, wave: WaveAverage) -> Frame:
        """A wave scene, colored against that wave's own maximum."""
        return Frame(
            date_label=wave.label,
            values=MappingProxyType(wave.values),
            max_value=wave.max_value,
            view_mode=ViewMode.DAILY,
        )

    def _lookup(self, maps: dict, index: int) -> tuple[str, MappingProxyType]:
        if not 0 <= index < len(self.series.dates):
            return "", _EMPTY
        day = self.series.dates[index]
        values = maps.get(day)
        return day.isoformat(), MappingProxyType(values) if values is not None else _EMPTY
