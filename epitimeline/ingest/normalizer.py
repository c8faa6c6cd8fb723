"""Normalize raw case rows into observations.

Rows come from the NYT county file (or anything shaped like it): a date
string, a county identifier that may have lost its leading zeros, and a
cumulative case count. Bad rows are counted and dropped; nothing here aborts
the batch.
"""

import csv
import logging
import math
import re
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any

from epitimeline.config import ColumnConfig
from epitimeline.models import Observation

logger = logging.getLogger(__name__)

REGION_KEY_WIDTH = 5
DATE_FORMAT = "%Y-%m-%d"
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


class NormalizationResult:
    """Normalized observations plus per-reason skip counts."""

    def __init__(self) -> None:
        self.observations: list[Observation] = []
        self.rows_seen: int = 0
        self.skipped_missing_region: int = 0
        self.skipped_bad_date: int = 0
        self.coerced_counts: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_missing_region + self.skipped_bad_date

    def __repr__(self) -> str:
        return (
            f"NormalizationResult({len(self.observations)} kept / {self.rows_seen} rows "
            f"[missing_region={self.skipped_missing_region}, "
            f"bad_date={self.skipped_bad_date}, "
            f"coerced_counts={self.coerced_counts}])"
        )


def normalize_region_key(raw: Any, width: int = REGION_KEY_WIDTH) -> str | None:
    """Return the fixed-width region key, or None if there is no identifier.

    Integer-valued inputs ("1001", 1001, "1001.0") all map to "01001".
    Keys already at or beyond ``width`` are returned unchanged.
    """
    if raw is None:
        return None
    if isinstance(raw, float):
        if math.isnan(raw):
            return None
        if raw.is_integer():
            raw = int(raw)
    key = str(raw).strip()
    if not key:
        return None
    # pandas round-trips turn "1001" into "1001.0"
    if key.endswith(".0") and key[:-2].isdigit():
        key = key[:-2]
    return key.rjust(width, "0")


def parse_date(raw: Any) -> date | None:
    """Parse a YYYY-MM-DD string. Returns None when it can't."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    # strptime alone would take "2020-3-5"
    if not _DATE_RE.fullmatch(text):
        return None
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError:
        return None


def coerce_count(raw: Any) -> tuple[int, bool]:
    """Coerce a cumulative count to a non-negative int.

    Returns (value, coerced) where coerced is True if the input had to be
    replaced with 0.
    """
    if isinstance(raw, bool):
        return 0, True
    # integer strings skip float(), which rounds past 2**53
    if isinstance(raw, str):
        try:
            raw = int(raw.strip())
        except ValueError:
            pass
    if isinstance(raw, int):
        return (raw, False) if raw >= 0 else (0, True)
    try:
        value = float(str(raw).strip()) if not isinstance(raw, float) else raw
    except (TypeError, ValueError):
        return 0, True
    if math.isnan(value) or math.isinf(value) or value < 0:
        return 0, True
    return int(value), False


def normalize_rows(
    rows: Iterable[Mapping[str, Any]],
    columns: ColumnConfig | None = None,
    key_width: int = REGION_KEY_WIDTH,
) -> NormalizationResult:
    """Validate and canonicalize raw rows. Output keeps arrival order."""
    columns = columns or ColumnConfig()
    result = NormalizationResult()

    for row in rows:
        result.rows_seen += 1

        region_key = normalize_region_key(row.get(columns.region), key_width)
        if region_key is None:
            result.skipped_missing_region += 1
            logger.debug("Row %d: missing region identifier", result.rows_seen)
            continue

        day = parse_date(row.get(columns.date))
        if day is None:
            result.skipped_bad_date += 1
            logger.debug("Row %d: unparseable date %r", result.rows_seen, row.get(columns.date))
            continue

        count, coerced = coerce_count(row.get(columns.count))
        if coerced:
            result.coerced_counts += 1

        result.observations.append(Observation(day, region_key, count))

    logger.info("Normalization complete: %s", result)
    return result


def read_case_rows(path: Path) -> Iterator[dict[str, str]]:
    """Yield rows from a case CSV as dicts keyed by header."""
    with open(path, newline="", encoding="utf-8", errors="replace") as f:
        yield from csv.DictReader(f)
