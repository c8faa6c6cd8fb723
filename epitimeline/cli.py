"""CLI entry point for the epidemic timeline engine."""

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

from epitimeline.analysis.aggregator import AggregatedSeries, DataError
from epitimeline.analysis.key_stages import resolve_key_stages
from epitimeline.analysis.waves import compute_wave_averages
from epitimeline.config import Config, load_config
from epitimeline.ingest.features import coverage_report, feature_region_keys, load_feature_collection
from epitimeline.ingest.normalizer import read_case_rows
from epitimeline.models import Frame, KeyStage, PlaybackStatus, ViewMode
from epitimeline.output.sidebar import build_sidebar
from epitimeline.playback.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from epitimeline.session import TimelineSession, build_series, build_session

logger = logging.getLogger(__name__)


def _cases_path(args: argparse.Namespace, config: Config) -> Path:
    return Path(args.cases) if args.cases else config.resolved_cases_csv


def _load_series(args: argparse.Namespace, config: Config) -> AggregatedSeries:
    series, normalized = build_series(read_case_rows(_cases_path(args, config)), config)
    if normalized.skipped:
        print(f"Skipped {normalized.skipped} malformed rows ({normalized})")
    return series


def _index_for(series: AggregatedSeries, day: str | None) -> int:
    """Axis index for a YYYY-MM-DD date; the last date when omitted."""
    if day is None:
        return series.last_index
    target = date.fromisoformat(day)
    idx = series.index_of(target)
    if idx is None:
        raise ValueError(f"{day} is not on the date axis ({series.dates[0]}..{series.dates[-1]})")
    return idx


def _print_sidebar(series: AggregatedSeries, index: int, mode: ViewMode, top: int) -> None:
    summary = build_sidebar(series, index, mode, top_n=top)
    print(f"{summary.date_label} [{summary.view_mode.value}]")
    print(f"  new cases:        {summary.total_new_cases:,}")
    print(f"  {series.rolling_window}-day total:    {summary.total_rolling:,}")
    print(f"  cumulative:       {summary.total_cumulative:,}")
    print(f"  reporting:        {summary.reporting_regions} regions")
    for rv in summary.top_regions:
        print(f"    {rv.region_key}  {rv.value:,.0f}")


class StageHold:
    """Keeps each key stage on screen for ``delay`` seconds, then acknowledges it."""

    def __init__(self, scheduler: Scheduler, delay: float) -> None:
        self.scheduler = scheduler
        self.delay = delay
        self.session: TimelineSession | None = None
        self._handle: ScheduledHandle | None = None

    def on_stage_reached(self, stage: KeyStage) -> None:
        print(f"\n== {stage.date} {stage.title} ==\n   {stage.description}\n")
        self._handle = self.scheduler.call_later(self.delay, self._release)

    def on_stage_acknowledged(self) -> None:
        # an earlier acknowledgment supersedes the scheduled one
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _release(self) -> None:
        self._handle = None
        if self.session is not None:
            self.session.acknowledge_stage()


def _run_playback(args: argparse.Namespace, config: Config) -> None:
    rows = read_case_rows(_cases_path(args, config))

    async def run() -> None:
        finished = asyncio.Event()
        scheduler = AsyncioScheduler(asyncio.get_running_loop())
        hold = StageHold(scheduler, args.stage_pause)
        started = False

        def on_frame(frame: Frame) -> None:
            session = hold.session
            if session is None or not started:
                return
            summary = session.sidebar(top_n=0)
            print(
                f"{frame.date_label}  {len(frame.values):>5} regions  "
                f"new {summary.total_new_cases:>9,}  cumulative {summary.total_cumulative:>12,}"
            )
            if session.state.status == PlaybackStatus.STOPPED:
                finished.set()

        session = build_session(
            rows, config, scheduler,
            on_frame=on_frame,
            on_stage_reached=hold.on_stage_reached,
            on_stage_acknowledged=hold.on_stage_acknowledged,
        )
        hold.session = session
        if args.mode:
            session.set_view_mode(args.mode)
        if args.speed:
            session.set_speed(args.speed)
        if args.start:
            session.seek(_index_for(session.series, args.start))
            session.acknowledge_stage()
        started = True
        session.play()
        try:
            if session.state.status != PlaybackStatus.STOPPED:
                await finished.wait()
        finally:
            session.close()

    asyncio.run(run())


def main() -> None:
    parser = argparse.ArgumentParser(description="County epidemic timeline")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command")

    # summary command
    summary_parser = sub.add_parser("summary", help="Aggregate the case file and show its shape")
    summary_parser.add_argument("cases", nargs="?", help="Case CSV. Defaults to cases_csv from config.")

    # waves command
    waves_parser = sub.add_parser("waves", help="Average daily new cases per wave")
    waves_parser.add_argument("cases", nargs="?", help="Case CSV. Defaults to cases_csv from config.")
    waves_parser.add_argument("--top", type=int, default=5, help="Regions to list per wave")

    # stages command
    stages_parser = sub.add_parser("stages", help="Show where key stages land on the date axis")
    stages_parser.add_argument("cases", nargs="?", help="Case CSV. Defaults to cases_csv from config.")

    # frame command
    frame_parser = sub.add_parser("frame", help="Show the sidebar for one date")
    frame_parser.add_argument("cases", nargs="?", help="Case CSV. Defaults to cases_csv from config.")
    frame_parser.add_argument("--date", default=None, help="YYYY-MM-DD (default: last date)")
    frame_parser.add_argument(
        "--mode", choices=[m.value for m in ViewMode], default=ViewMode.DAILY.value,
    )
    frame_parser.add_argument("--top", type=int, default=5, help="Regions to list")

    # coverage command
    coverage_parser = sub.add_parser("coverage", help="Compare map feature ids with case regions")
    coverage_parser.add_argument("features", help="GeoJSON or TopoJSON file")
    coverage_parser.add_argument("cases", nargs="?", help="Case CSV. Defaults to cases_csv from config.")

    # play command
    play_parser = sub.add_parser("play", help="Autoplay the timeline in the terminal")
    play_parser.add_argument("cases", nargs="?", help="Case CSV. Defaults to cases_csv from config.")
    play_parser.add_argument("--speed", type=float, default=None, help="Speed multiplier")
    play_parser.add_argument("--mode", choices=[m.value for m in ViewMode], default=None)
    play_parser.add_argument("--start", default=None, help="Start date YYYY-MM-DD")
    play_parser.add_argument(
        "--stage-pause", type=float, default=2.0,
        help="Seconds to hold on each key stage before continuing",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)

    try:
        if args.command == "summary":
            series = _load_series(args, config)
            print(series)
            print(f"  dates:          {series.dates[0]} .. {series.dates[-1]} ({len(series.dates)})")
            print(f"  regions:        {len(series.regions)}")
            print(f"  max daily:      {series.global_max:,}")
            print(f"  max cumulative: {series.cumulative_max:,}")
            print(f"  max {series.rolling_window}-day:    {series.rolling_max:,}")

        elif args.command == "waves":
            series = _load_series(args, config)
            for wave in compute_wave_averages(series, config.waves):
                print(
                    f"{wave.label} ({wave.window.start} .. {wave.window.end}): "
                    f"{wave.dates_covered} dates, {len(wave.values)} regions, "
                    f"max avg {wave.max_value:,.1f}"
                )
                ranked = sorted(wave.values.items(), key=lambda kv: -kv[1])[:args.top]
                for key, value in ranked:
                    print(f"    {key}  {value:,.1f}")

        elif args.command == "stages":
            series = _load_series(args, config)
            resolved = resolve_key_stages(config.key_stages, series.dates)
            shown = {rs.position for rs in resolved}
            for rs in resolved:
                print(f"  [{rs.index:>4}] {series.date_label(rs.index)}  {rs.stage.title}")
            for pos, stage in enumerate(config.key_stages):
                if pos not in shown:
                    print(f"  [----] {stage.date}  {stage.title} (past the last date)")

        elif args.command == "frame":
            series = _load_series(args, config)
            _print_sidebar(series, _index_for(series, args.date), ViewMode(args.mode), args.top)

        elif args.command == "coverage":
            series = _load_series(args, config)
            keys = feature_region_keys(
                load_feature_collection(Path(args.features)),
                key_width=config.aggregation.region_key_width,
            )
            report = coverage_report(keys, series.regions)
            print(report)
            if report.data_without_features:
                sample = ", ".join(sorted(report.data_without_features)[:10])
                print(f"  case regions with no map feature: {sample}")

        elif args.command == "play":
            _run_playback(args, config)

        else:
            parser.print_help()
    except (DataError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
