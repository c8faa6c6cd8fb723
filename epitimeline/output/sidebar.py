"""Sidebar annotation for the date on screen."""

from epitimeline.analysis.aggregator import AggregatedSeries
from epitimeline.models import KeyStage, RegionValue, SidebarSummary, ViewMode


def build_sidebar(
    series: AggregatedSeries,
    index: int,
    mode: ViewMode,
    stage: KeyStage | None = None,
    top_n: int = 5,
) -> SidebarSummary:
    """Totals and top regions for one date."""
    mode = ViewMode(mode)
    if not 0 <= index < len(series.dates):
        return SidebarSummary(date_label="", view_mode=mode)

    day = series.dates[index]
    daily = series.daily.get(day, {})
    cumulative = series.cumulative.get(day, {})
    rolling = series.rolling.get(day, {})

    ranked_source = cumulative if mode == ViewMode.CUMULATIVE else daily
    ranked = sorted(ranked_source.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]

    return SidebarSummary(
        date_label=day.isoformat(),
        view_mode=mode,
        total_new_cases=sum(daily.values()),
        total_rolling=sum(rolling.values()),
        total_cumulative=sum(cumulative.values()),
        reporting_regions=len(daily),
        top_regions=[RegionValue(region_key=k, value=v) for k, v in ranked],
        stage_title=stage.title if stage else None,
        stage_description=stage.description if stage else None,
    )
