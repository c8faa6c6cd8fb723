"""Match geographic feature ids against case-data region keys."""

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from epitimeline.ingest.normalizer import REGION_KEY_WIDTH, normalize_region_key

logger = logging.getLogger(__name__)

ID_PROPERTIES = ("GEOID", "fips", "FIPS")


@dataclass(frozen=True)
class CoverageReport:
    matched: frozenset[str]
    features_without_data: frozenset[str]
    data_without_features: frozenset[str]

    def __repr__(self) -> str:
        return (
            f"CoverageReport(matched={len(self.matched)}, "
            f"features_without_data={len(self.features_without_data)}, "
            f"data_without_features={len(self.data_without_features)})"
        )


def _feature_id(item: Mapping[str, Any]) -> Any:
    if item.get("id") is not None:
        return item["id"]
    props = item.get("properties") or {}
    for name in ID_PROPERTIES:
        if props.get(name) is not None:
            return props[name]
    return None


def _iter_items(collection: Mapping[str, Any]) -> Iterable[Mapping[str, Any]]:
    """Yield features (GeoJSON) or geometries (TopoJSON)."""
    if collection.get("type") == "Topology":
        for obj in (collection.get("objects") or {}).values():
            yield from obj.get("geometries") or []
    elif collection.get("type") == "FeatureCollection":
        yield from collection.get("features") or []
    else:
        raise ValueError(f"Unsupported feature collection type: {collection.get('type')!r}")


def feature_region_keys(
    collection: Mapping[str, Any],
    key_width: int = REGION_KEY_WIDTH,
) -> set[str]:
    """Return the normalized region keys carried by a feature collection.

    Features without any usable id are skipped.
    """
    keys: set[str] = set()
    missing = 0
    for item in _iter_items(collection):
        key = normalize_region_key(_feature_id(item), key_width)
        if key is None:
            missing += 1
            continue
        keys.add(key)
    if missing:
        logger.warning("Skipped %d features without a region id", missing)
    return keys


def load_feature_collection(path: Path) -> dict[str, Any]:
    return json.loads(Path(path).read_text())


def coverage_report(feature_keys: Iterable[str], data_keys: Iterable[str]) -> CoverageReport:
    """Compare the regions on the map with the regions in the case data."""
    features = frozenset(feature_keys)
    data = frozenset(data_keys)
    report = CoverageReport(
        matched=features & data,
        features_without_data=features - data,
        data_without_features=data - features,
    )
    logger.info("Feature coverage: %s", report)
    return report
