from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Optional

Level = Literal["region", "branch", "centre"]
Trend = Literal["up", "down", "unknown"]
Rating = Literal["Excellent", "Good", "Average", "Poor"]

LEVELS = ("region", "branch", "centre")

UNASSIGNED_ID = "unassigned"
UNASSIGNED_NAME = "Unassigned"


@dataclass(frozen=True)
class Region:
    id: str
    name: str
    code: Optional[str] = None


@dataclass(frozen=True)
class Branch:
    id: str
    name: str
    region_id: str
    code: Optional[str] = None


@dataclass(frozen=True)
class Centre:
    id: str
    name: str
    branch_id: str
    region_id: str
    external_code: Optional[str] = None
    short_code: Optional[str] = None


@dataclass(frozen=True)
class MonthlyRecord:
    period: str
    ad_expense_total: float = 0.0
    business_total: float = 0.0


@dataclass(frozen=True)
class AggregateMetrics:
    """Derived per-entity metrics. Never stored; rebuilt from MonthlyRecords on demand."""

    ad_expense_total: float = 0.0
    business_total: float = 0.0
    ad_percentage: float = 0.0
    roi: float = 0.0
    performance_score: float = 0.0
    efficiency: float = 0.0
    trend: Trend = "unknown"
    rating: Rating = "Poor"


def normalize_id(value: object) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    s = str(value).strip()
    if not s or s.lower() in {"nan", "none", "null", "undefined"}:
        return None
    return s


def check_level(level: str) -> Level:
    if level not in LEVELS:
        raise ValueError(f"Unknown hierarchy level: {level!r}")
    return level  # type: ignore[return-value]
