from __future__ import annotations

from typing import Any, Dict, Optional

import altair as alt
import pandas as pd

from core.metrics import round_half_up

alt.data_transformers.disable_max_rows()

RATING_COLORS = {
    "Excellent": "#16a34a",
    "Good": "#2563eb",
    "Average": "#ea580c",
    "Poor": "#dc2626",
}

SERIES_LABELS = {
    "ad_percentage": "Ad Percentage (%)",
    "roi": "ROI Multiplier (x)",
    "performance_score": "Performance Score",
}


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def centre_series_chart(series: pd.DataFrame, title: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Ad %, ROI and score per month for one centre."""
    if series.empty:
        return None
    long_df = (
        series.melt(id_vars=["period"], value_vars=list(SERIES_LABELS), var_name="metric", value_name="value")
        .assign(
            metric=lambda d: d["metric"].map(SERIES_LABELS),
            value=lambda d: d["value"].map(lambda v: round_half_up(v, 1)),
        )
    )
    hover = alt.selection_point(fields=["metric"], on="mouseover")
    chart = (
        alt.Chart(long_df)
        .mark_line(point={"filled": True, "size": 60})
        .encode(
            x=alt.X("period:O", title="Month", axis=alt.Axis(grid=False)),
            y=alt.Y("value:Q", title=None, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("metric:N", title=None),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
            tooltip=[
                alt.Tooltip("period", title="Month"),
                alt.Tooltip("metric", title="Metric"),
                alt.Tooltip("value:Q", title="Value", format=",.1f"),
            ],
        )
        .add_params(hover)
        .properties(height=260, title=title or "Performance Analysis")
    )
    return to_vega_spec(chart)


def overview_chart(ranked: pd.DataFrame) -> Optional[Dict[str, Any]]:
    """Performance score per centre in ranked order, coloured by rating."""
    if ranked.empty:
        return None
    df = ranked[["rank", "name", "performance_score", "roi", "ad_percentage", "rating"]].copy()
    df["label"] = df["rank"].astype(str) + ". " + df["name"].astype(str)
    for col in ("performance_score", "roi", "ad_percentage"):
        df[col] = df[col].map(lambda v: round_half_up(v, 1))
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("label:N", title="Centre", sort=df["label"].tolist(), axis=alt.Axis(grid=False, labelLimit=120)),
            y=alt.Y("performance_score:Q", title="Performance Score", axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color(
                "rating:N",
                scale=alt.Scale(domain=list(RATING_COLORS), range=list(RATING_COLORS.values())),
                title="Rating",
            ),
            tooltip=[
                alt.Tooltip("name", title="Centre"),
                alt.Tooltip("performance_score:Q", title="Score", format=",.1f"),
                alt.Tooltip("roi:Q", title="ROI", format=",.1f"),
                alt.Tooltip("ad_percentage:Q", title="Ad %", format=",.1f"),
                alt.Tooltip("rating", title="Rating"),
            ],
        )
        .properties(height=280)
    )
    return to_vega_spec(chart)
