"""Monthly ad-expense / business series -> aggregate performance metrics.

All ratios treat a zero denominator as 0 so that every centre gets a
comparable, total-ordered score. Rating bands are evaluated on the unrounded
score; display rounding happens afterwards in ``display_metrics``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from core.filters import ScoreBands
from core.models import AggregateMetrics, MonthlyRecord, Rating, Trend

logger = logging.getLogger(__name__)

MONTHLY_COLUMNS = {
    "month": "period",
    "period": "period",
    "adExpenseTotal": "ad_expense_total",
    "ad_expense_total": "ad_expense_total",
    "businessTotal": "business_total",
    "business_total": "business_total",
}
RECORD_COLUMNS = ["period", "ad_expense_total", "business_total"]
SERIES_COLUMNS = RECORD_COLUMNS + ["ad_percentage", "roi", "performance_score", "efficiency", "rating"]
METRIC_COLUMNS = list(AggregateMetrics.__dataclass_fields__)

DEFAULT_BANDS = ScoreBands()

Records = Union[pd.DataFrame, Sequence[MonthlyRecord], Sequence[Mapping[str, Any]]]


def parse_period(value: object) -> Optional[str]:
    """Normalize ``2024-3``, ``2024-03``, ``2024-03-15`` or a timestamp to ``YYYY-MM``."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        year, month = value.get("year"), value.get("month")
        if year is None or month is None:
            return None
        value = f"{year}-{month}"
    if isinstance(value, pd.Timestamp):
        return f"{value.year:04d}-{value.month:02d}"
    match = re.match(r"^\s*(\d{4})-(\d{1,2})(?:\b|-)", str(value))
    if not match:
        return None
    month = int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return f"{int(match.group(1)):04d}-{month:02d}"


def monthly_frame(records: Optional[Records]) -> pd.DataFrame:
    """
    Coerce raw monthly rows into a clean frame sorted by period.

    Missing or non-numeric totals become 0, negative totals are clamped to 0,
    rows without a usable period are dropped and duplicate periods are summed.
    """
    if records is None:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    if isinstance(records, pd.DataFrame):
        df = records.copy()
    else:
        rows = [asdict(r) if isinstance(r, MonthlyRecord) else dict(r) for r in records if r is not None]
        df = pd.DataFrame(rows)
    if df.empty:
        return pd.DataFrame(columns=RECORD_COLUMNS)

    for source, target in MONTHLY_COLUMNS.items():
        if source == target or source not in df.columns:
            continue
        # rows may mix camelCase and snake_case keys; coalesce them
        df[target] = df[source] if target not in df.columns else df[target].fillna(df[source])
        df = df.drop(columns=[source])
    for col in RECORD_COLUMNS:
        if col not in df.columns:
            df[col] = pd.NA

    df["period"] = df["period"].apply(parse_period)
    bad = int(df["period"].isna().sum())
    if bad:
        logger.warning("Dropping %d monthly record(s) without a valid period", bad)
        df = df.dropna(subset=["period"])

    for col in ("ad_expense_total", "business_total"):
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0).astype(float).clip(lower=0.0)

    return (
        df.groupby("period", sort=True)[["ad_expense_total", "business_total"]]
        .sum()
        .reset_index()[RECORD_COLUMNS]
    )


def to_records(records: Optional[Records]) -> List[MonthlyRecord]:
    df = monthly_frame(records)
    return [
        MonthlyRecord(period=str(r.period), ad_expense_total=float(r.ad_expense_total), business_total=float(r.business_total))
        for r in df.itertuples(index=False)
    ]


def compute_ratios(ad_expense: float, business: float) -> Tuple[float, float, float, float]:
    """Return ``(ad_percentage, roi, performance_score, efficiency)`` for one pair of totals."""
    ad_percentage = ad_expense / business * 100 if business > 0 else 0.0
    roi = business / ad_expense if ad_expense > 0 else 0.0
    performance_score = roi * 10 - ad_percentage
    efficiency = roi / ad_percentage * 100 if roi > 0 and ad_percentage > 0 else 0.0
    return ad_percentage, roi, performance_score, efficiency


def classify_score(score: float, bands: ScoreBands = DEFAULT_BANDS) -> Rating:
    if score > bands.excellent:
        return "Excellent"
    if score > bands.good:
        return "Good"
    if score > bands.average:
        return "Average"
    return "Poor"


def classify_series(scores: pd.Series, bands: ScoreBands = DEFAULT_BANDS) -> pd.Series:
    """Vectorized ``classify_score``; equal band edges simply leave the middle band empty."""
    values = scores.astype(float)
    rated = np.select(
        [values > bands.excellent, values > bands.good, values > bands.average],
        ["Excellent", "Good", "Average"],
        default="Poor",
    )
    return pd.Series(rated, index=scores.index, dtype=object)


def compute_trend(df: pd.DataFrame) -> Trend:
    if len(df) < 2:
        return "unknown"
    last, prev = df["business_total"].iloc[-1], df["business_total"].iloc[-2]
    return "up" if last > prev else "down"


def aggregate_metrics(records: Optional[Records], bands: ScoreBands = DEFAULT_BANDS) -> AggregateMetrics:
    df = monthly_frame(records)
    ad_expense = float(df["ad_expense_total"].sum()) if not df.empty else 0.0
    business = float(df["business_total"].sum()) if not df.empty else 0.0
    ad_percentage, roi, score, efficiency = compute_ratios(ad_expense, business)
    return AggregateMetrics(
        ad_expense_total=ad_expense,
        business_total=business,
        ad_percentage=ad_percentage,
        roi=roi,
        performance_score=score,
        efficiency=efficiency,
        trend=compute_trend(df),
        rating=classify_score(score, bands),
    )


def period_series(records: Optional[Records], bands: ScoreBands = DEFAULT_BANDS) -> pd.DataFrame:
    """Per-period metrics: the aggregate formulas applied to each single month."""
    df = monthly_frame(records)
    if df.empty:
        return pd.DataFrame(columns=SERIES_COLUMNS)
    ad = df["ad_expense_total"]
    business = df["business_total"]
    df["ad_percentage"] = np.where(business > 0, ad / business.where(business > 0, 1.0) * 100, 0.0)
    df["roi"] = np.where(ad > 0, business / ad.where(ad > 0, 1.0), 0.0)
    df["performance_score"] = df["roi"] * 10 - df["ad_percentage"]
    positive = (df["roi"] > 0) & (df["ad_percentage"] > 0)
    df["efficiency"] = np.where(
        positive, df["roi"] / df["ad_percentage"].where(positive, 1.0) * 100, 0.0
    )
    df["rating"] = classify_series(df["performance_score"], bands)
    return df[SERIES_COLUMNS]


def aggregate_frame(
    monthly: pd.DataFrame,
    centre_ids: Iterable[str],
    bands: ScoreBands = DEFAULT_BANDS,
) -> pd.DataFrame:
    """One row of AggregateMetrics per centre id; centres without records get zero metrics."""
    grouped: Dict[str, pd.DataFrame] = {}
    if not monthly.empty and "centre_id" in monthly.columns:
        grouped = {str(cid): g for cid, g in monthly.groupby("centre_id", sort=False)}
    rows = []
    for cid in centre_ids:
        metrics = aggregate_metrics(grouped.get(cid), bands)
        rows.append({"centre_id": cid, **asdict(metrics)})
    return pd.DataFrame(rows, columns=["centre_id"] + METRIC_COLUMNS)


# ---------------- Display ----------------
def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def display_metrics(metrics: AggregateMetrics) -> Dict[str, Any]:
    """Rounded copy for display. Rating and trend are carried over from the unrounded values."""
    out = asdict(metrics)
    for key in ("ad_percentage", "roi", "performance_score"):
        out[key] = round_half_up(out[key], 1)
    out["efficiency"] = round_half_up(out["efficiency"], 0)
    out["ad_expense_total"] = round_half_up(out["ad_expense_total"], 2)
    out["business_total"] = round_half_up(out["business_total"], 2)
    return out
