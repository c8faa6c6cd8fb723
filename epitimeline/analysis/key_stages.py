"""Pin narrative key stages onto the date axis."""

import bisect
import logging
from collections.abc import Sequence
from datetime import date

from epitimeline.models import KeyStage, ResolvedStage

logger = logging.getLogger(__name__)


def resolve_stage_index(stage_date: date, dates: Sequence[date]) -> int | None:
    """First axis index whose date is >= stage_date, or None past the end."""
    idx = bisect.bisect_left(dates, stage_date)
    return idx if idx < len(dates) else None


def resolve_key_stages(
    stages: Sequence[KeyStage],
    dates: Sequence[date],
) -> list[ResolvedStage]:
    """Resolve every stage the axis reaches, keeping declaration order."""
    resolved: list[ResolvedStage] = []
    for position, stage in enumerate(stages):
        idx = resolve_stage_index(stage.date, dates)
        if idx is None:
            logger.info("Key stage %r (%s) is past the last date; dropped", stage.title, stage.date)
            continue
        resolved.append(ResolvedStage(position=position, stage=stage, index=idx))
    return resolved
