from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import pandas as pd

from core.charts import centre_series_chart, overview_chart
from core.filters import PerformanceFilters, ScoreBands
from core.hierarchy import HierarchyIndex
from core.metrics import (
    aggregate_metrics,
    classify_score,
    compute_ratios,
    display_metrics,
    period_series,
    round_half_up,
)
from core.models import UNASSIGNED_NAME
from core.ranking import apply_performance_filters, band_counts

ONE_DECIMAL = ("ad_percentage", "roi", "performance_score")


def _display_table(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for col in ONE_DECIMAL:
        if col in out.columns:
            out[col] = out[col].map(lambda v: round_half_up(v, 1))
    if "efficiency" in out.columns:
        out["efficiency"] = out["efficiency"].map(lambda v: round_half_up(v, 0))
    return out


def _portfolio_kpis(df: pd.DataFrame, bands: ScoreBands) -> Dict[str, Any]:
    ad_expense = float(df["ad_expense_total"].sum()) if not df.empty else 0.0
    business = float(df["business_total"].sum()) if not df.empty else 0.0
    ad_percentage, roi, score, efficiency = compute_ratios(ad_expense, business)
    return {
        "centres": int(len(df)),
        "ad_expense_total": ad_expense,
        "business_total": business,
        "ad_percentage": round_half_up(ad_percentage, 1),
        "roi": round_half_up(roi, 1),
        "performance_score": round_half_up(score, 1),
        "efficiency": round_half_up(efficiency, 0),
        "rating": classify_score(score, bands),
    }


def compute_performance(filters: PerformanceFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    table: pd.DataFrame = ctx.get("performance", pd.DataFrame()).copy()
    if table.empty:
        return {
            "filters": asdict(filters),
            "kpis": _portfolio_kpis(table, filters.bands),
            "bands": band_counts(table),
            "top": [],
            "options": {"branches": [], "regions": []},
            "periods": ctx.get("periods", []),
            "charts": {},
        }

    branches = sorted(table["branch_name"].fillna(UNASSIGNED_NAME).astype(str).unique().tolist())
    regions = sorted(table["region_name"].fillna(UNASSIGNED_NAME).astype(str).unique().tolist())

    ranked = apply_performance_filters(table, filters)
    overview = overview_chart(ranked)
    return {
        "filters": asdict(filters),
        "kpis": _portfolio_kpis(ranked, filters.bands),
        "bands": band_counts(ranked),
        "top": _display_table(ranked).to_dict(orient="records"),
        "options": {"branches": branches, "regions": regions},
        "periods": ctx.get("periods", []),
        "charts": {"overview": overview} if overview else {},
    }


def compute_centre_detail(
    centre_id: str,
    ctx: Dict[str, Any],
    bands: Optional[ScoreBands] = None,
) -> Optional[Dict[str, Any]]:
    index: Optional[HierarchyIndex] = ctx.get("index")
    if index is None or centre_id not in index.centres:
        return None
    bands = bands or ScoreBands()
    monthly: pd.DataFrame = ctx.get("monthly", pd.DataFrame())
    records = monthly[monthly["centre_id"] == centre_id] if not monthly.empty else None

    centre = index.centres[centre_id]
    metrics = aggregate_metrics(records, bands)
    series = period_series(records, bands)
    return {
        "centre": {
            **asdict(centre),
            "branch_name": index.label("branch", centre.branch_id),
            "region_name": index.label("region", centre.region_id),
            "incomplete": index.incomplete.get(centre_id),
        },
        "metrics": asdict(metrics),
        "display": display_metrics(metrics),
        "series": _display_table(series).to_dict(orient="records"),
        "chart": centre_series_chart(series, title=f"{centre.name} - Performance Analysis"),
    }
