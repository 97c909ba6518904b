from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from core.filters import PerformanceFilters, ScoreBands, normalize_performance_filters
from core.hierarchy import HierarchyIndex
from core.metrics import RECORD_COLUMNS, aggregate_frame, monthly_frame
from core.models import normalize_id

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("ADPERF_DATA_DIR", Path(__file__).resolve().parents[1] / "data"))

CENTRES_FILE = "centres.json"
PERFORMANCE_FILE = "centres_performance.json"
REGIONS_FILE = "regions.json"
BRANCHES_FILE = "branches.json"
SOURCE_FILES = (CENTRES_FILE, PERFORMANCE_FILE, REGIONS_FILE, BRANCHES_FILE)

MONTHLY_LONG_COLUMNS = ["centre_id"] + RECORD_COLUMNS


def get_source_files() -> List[Path]:
    return [DATA_DIR / name for name in SOURCE_FILES if (DATA_DIR / name).is_file()]


def file_signature(files: List[Path]) -> Tuple[Tuple[str, float], ...]:
    return tuple((f.name, f.stat().st_mtime) for f in files)


def unwrap_records(payload: Any, *keys: str) -> List[Any]:
    """Accept a bare list or the backend envelope ``{"data": [...]}``."""
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in keys + ("data",):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    logger.warning("Unrecognized payload of type %s; treating as empty", type(payload).__name__)
    return []


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


# ---------------- Parsing ----------------
def parse_performance(payload: Any) -> Tuple[List[Mapping[str, Any]], pd.DataFrame]:
    """
    Split the performance payload into centre records and one long monthly frame.

    Items look like ``{"centre": {...}, "monthly": [{"month": "2024-01", ...}]}``.
    """
    centres: List[Mapping[str, Any]] = []
    frames: List[pd.DataFrame] = []
    for item in unwrap_records(payload, "centres"):
        if not isinstance(item, Mapping):
            logger.warning("Skipping performance item of type %s", type(item).__name__)
            continue
        centre = item.get("centre") if isinstance(item.get("centre"), Mapping) else item
        centre_id = normalize_id(centre.get("id")) or normalize_id(centre.get("_id"))
        if centre_id is None:
            logger.warning("Skipping performance item without a centre id")
            continue
        centres.append(centre)
        monthly = monthly_frame(item.get("monthly") or [])
        if monthly.empty:
            continue
        monthly.insert(0, "centre_id", centre_id)
        frames.append(monthly)
    if not frames:
        return centres, pd.DataFrame(columns=MONTHLY_LONG_COLUMNS)
    return centres, pd.concat(frames, ignore_index=True)[MONTHLY_LONG_COLUMNS]


def build_data_context(
    centres: Optional[Iterable[Mapping[str, Any]]] = None,
    performance: Any = None,
    *,
    regions: Optional[Iterable[Mapping[str, Any]]] = None,
    branches: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Dict[str, object]:
    """Normalize one immutable snapshot into the hierarchy index plus a long monthly frame."""
    perf_centres, monthly = parse_performance(performance)
    records = list(centres or []) + perf_centres
    index = HierarchyIndex(records, regions=regions, branches=branches)

    if not monthly.empty:
        known = monthly["centre_id"].isin(set(index.centres))
        orphans = int((~known).sum())
        if orphans:
            logger.warning("Dropping %d monthly row(s) for unknown centres", orphans)
        monthly = monthly[known].reset_index(drop=True)

    return {
        "index": index,
        "monthly": monthly,
        "centres": index.to_frame(),
        "periods": sorted(monthly["period"].unique().tolist()) if not monthly.empty else [],
    }


# ---------------- Public API (FastAPI use) ----------------
@lru_cache(maxsize=4)
def _load_dashboard_data_cached(files_sig: Tuple[Tuple[str, float], ...]) -> Dict[str, object]:
    payloads = {name: read_json(DATA_DIR / name) for name, _ in files_sig}
    regions = payloads.get(REGIONS_FILE)
    branches = payloads.get(BRANCHES_FILE)
    ctx = build_data_context(
        unwrap_records(payloads.get(CENTRES_FILE), "centres"),
        payloads.get(PERFORMANCE_FILE),
        regions=unwrap_records(regions, "regions") if regions is not None else None,
        branches=unwrap_records(branches, "branches") if branches is not None else None,
    )
    ctx["files"] = [name for name, _ in files_sig]
    return ctx


def load_dashboard_data() -> Dict[str, object]:
    files = get_source_files()
    if not files:
        ctx = build_data_context()
        ctx["files"] = []
        return ctx
    return _load_dashboard_data_cached(file_signature(files))


def performance_table(data_ctx: Dict[str, object], bands: Optional[ScoreBands] = None) -> pd.DataFrame:
    """Centre attributes joined with their aggregate metrics, in hierarchy order."""
    centres: pd.DataFrame = data_ctx.get("centres", pd.DataFrame())
    monthly: pd.DataFrame = data_ctx.get("monthly", pd.DataFrame())
    if "centre_id" not in centres.columns:
        return pd.DataFrame()
    metrics = aggregate_frame(monthly, centres["centre_id"].tolist(), bands or ScoreBands())
    return centres.merge(metrics, on="centre_id", how="left")


def prepare_context(filters: dict | PerformanceFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    filt = filters if isinstance(filters, PerformanceFilters) else normalize_performance_filters(filters)
    table = performance_table(data_ctx, filt.bands)
    return {
        "filters": filt,
        "index": data_ctx.get("index"),
        "monthly": data_ctx.get("monthly", pd.DataFrame()),
        "performance": table,
        "periods": data_ctx.get("periods", []),
    }
