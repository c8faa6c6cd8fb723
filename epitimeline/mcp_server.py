#!/usr/bin/env python3
"""Epitimeline MCP server: query the aggregated county timeline."""

import json
import logging
import sys
from datetime import date
from typing import Optional

from mcp.server.fastmcp import FastMCP

from epitimeline.analysis.aggregator import AggregatedSeries
from epitimeline.analysis.key_stages import resolve_key_stages
from epitimeline.analysis.waves import compute_wave_averages
from epitimeline.config import Config, load_config
from epitimeline.ingest.normalizer import read_case_rows
from epitimeline.models import ViewMode
from epitimeline.output.projector import ViewProjector
from epitimeline.output.sidebar import build_sidebar
from epitimeline.session import build_series

mcp = FastMCP("epitimeline")
logger = logging.getLogger(__name__)

# Redirect all logging to stderr so stdout stays clean for MCP stdio transport
logging.basicConfig(
    stream=sys.stderr,
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

_series: AggregatedSeries | None = None
_config: Config | None = None


def _get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _get_series() -> AggregatedSeries:
    global _series
    if _series is None:
        config = _get_config()
        _series, _ = build_series(read_case_rows(config.resolved_cases_csv), config)
    return _series


def _resolve_index(series: AggregatedSeries, day: Optional[str]) -> int:
    if not day:
        return series.last_index
    idx = series.index_of(date.fromisoformat(day))
    if idx is None:
        raise ValueError(f"{day} is not on the date axis")
    return idx


@mcp.tool()
def dataset_summary() -> str:
    """Date range, region count and color bounds of the loaded case data."""
    try:
        series = _get_series()
        return json.dumps({
            "first_date": series.dates[0].isoformat(),
            "last_date": series.dates[-1].isoformat(),
            "dates": len(series.dates),
            "regions": len(series.regions),
            "global_max": series.global_max,
            "cumulative_max": series.cumulative_max,
            "rolling_max": series.rolling_max,
        })
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


@mcp.tool()
def get_frame(
    day: Optional[str] = None,
    mode: str = "daily",
    top_n: int = 10,
) -> str:
    """Sidebar totals, color bound and top regions for a date (YYYY-MM-DD, default last)."""
    try:
        series = _get_series()
        view = ViewMode(mode)
        idx = _resolve_index(series, day)
        frame = ViewProjector(series).project(idx, view)
        summary = build_sidebar(series, idx, view, top_n=top_n)
        result = summary.model_dump(mode="json")
        result["max_value"] = frame.max_value
        result["scale"] = frame.scale.value
        return json.dumps(result)
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


@mcp.tool()
def list_waves(top_n: int = 5) -> str:
    """Per-wave average daily new cases with the highest regions."""
    try:
        series = _get_series()
        out = []
        for wave in compute_wave_averages(series, _get_config().waves):
            ranked = sorted(wave.values.items(), key=lambda kv: -kv[1])[:top_n]
            out.append({
                "label": wave.label,
                "start": wave.window.start.isoformat(),
                "end": wave.window.end.isoformat(),
                "dates_covered": wave.dates_covered,
                "regions": len(wave.values),
                "max_value": wave.max_value,
                "top": [{"region_key": k, "value": v} for k, v in ranked],
            })
        return json.dumps(out)
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


@mcp.tool()
def list_key_stages() -> str:
    """Narrative key stages and the axis date each one resolves to."""
    try:
        series = _get_series()
        out = []
        for rs in resolve_key_stages(_get_config().key_stages, series.dates):
            out.append({
                "title": rs.stage.title,
                "description": rs.stage.description,
                "stage_date": rs.stage.date.isoformat(),
                "index": rs.index,
                "axis_date": series.date_label(rs.index),
            })
        return json.dumps(out)
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


if __name__ == "__main__":
    mcp.run()
