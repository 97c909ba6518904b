from __future__ import annotations

import unicodedata
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Tuple

import pandas as pd

from core.filters import RATINGS, SORT_KEYS, PerformanceFilters
from core.models import UNASSIGNED_NAME, AggregateMetrics

SORT_COLUMNS = {
    "business": "business_total",
    "expense": "ad_expense_total",
    "roi": "roi",
    "name": "name",
    "performance_score": "performance_score",
}


def name_sort_key(value: object) -> str:
    """Accent- and case-insensitive collation key for entity names."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    s = unicodedata.normalize("NFKD", str(value))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return s.casefold().strip()


def rank_entities(df: pd.DataFrame, sort_by: str = "business", sort_order: str = "desc") -> pd.DataFrame:
    """
    Sort by one key and number the rows from 1.

    Rows are ordered on ``(key, original position)``; the direction applies to
    the key only, so rows with equal keys always keep their input order.
    """
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_by!r}")
    if sort_order not in ("asc", "desc"):
        raise ValueError(f"Unknown sort order: {sort_order!r}")

    out = df.drop(columns=["rank"], errors="ignore").reset_index(drop=True).copy()
    if out.empty:
        out.insert(0, "rank", pd.Series(dtype=int))
        return out

    col = SORT_COLUMNS[sort_by]
    out["_order"] = range(len(out))
    if sort_by == "name":
        out["_key"] = out[col].map(name_sort_key)
    else:
        out["_key"] = pd.to_numeric(out[col], errors="coerce").fillna(0.0)
    out = out.sort_values(["_key", "_order"], ascending=[sort_order == "asc", True], kind="mergesort")
    out = out.drop(columns=["_key", "_order"]).reset_index(drop=True)
    out.insert(0, "rank", range(1, len(out) + 1))
    return out


def _entity_name(entity: Any) -> Any:
    if isinstance(entity, dict):
        return entity.get("name")
    return getattr(entity, "name", None)


def rank_pairs(
    pairs: Iterable[Tuple[Any, AggregateMetrics]],
    sort_by: str = "business",
    sort_order: str = "desc",
) -> List[Tuple[Any, AggregateMetrics]]:
    """Rank ``(entity, metrics)`` pairs; entities only need a ``name``."""
    items = list(pairs)
    frame = pd.DataFrame(
        [{"_pos": i, "name": _entity_name(entity), **asdict(metrics)} for i, (entity, metrics) in enumerate(items)]
    )
    if frame.empty:
        return []
    ranked = rank_entities(frame, sort_by, sort_order)
    return [items[int(pos)] for pos in ranked["_pos"]]


def apply_performance_filters(df: pd.DataFrame, filters: PerformanceFilters) -> pd.DataFrame:
    """Rating / branch / region / search narrowing, then ranking and top-N."""
    out = df.copy()
    if not out.empty:
        if filters.rating and "rating" in out.columns:
            out = out[out["rating"] == filters.rating]
        if filters.branch_name and "branch_name" in out.columns:
            out = out[out["branch_name"].fillna(UNASSIGNED_NAME) == filters.branch_name]
        if filters.region_name and "region_name" in out.columns:
            out = out[out["region_name"].fillna(UNASSIGNED_NAME) == filters.region_name]
        if filters.search:
            q = filters.search
            mask = out["name"].astype(str).str.contains(q, case=False, na=False, regex=False)
            if "external_code" in out.columns:
                mask = mask | out["external_code"].astype("string").str.contains(q, case=False, na=False, regex=False)
            out = out[mask]
    ranked = rank_entities(out, filters.sort_by, filters.sort_order)
    if filters.top_n:
        ranked = ranked.head(filters.top_n)
    return ranked


def band_counts(df: pd.DataFrame) -> Dict[str, int]:
    if df.empty or "rating" not in df.columns:
        return {r: 0 for r in RATINGS}
    counts = df["rating"].value_counts()
    return {r: int(counts.get(r, 0)) for r in RATINGS}
