from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

Level = Literal["region", "branch", "centre"]

LEVEL_OPS = {"add", "remove", "select_all_visible", "deselect_all_visible", "clear", "search"}


class ScoreBandsModel(BaseModel):
    excellent: float = 15.0
    good: float = 10.0
    average: float = 5.0


class PerformanceFiltersModel(BaseModel):
    sort_by: Literal["business", "expense", "roi", "name", "performance_score"] = "business"
    sort_order: Literal["asc", "desc"] = "desc"
    search: str = ""
    rating: Optional[Literal["Excellent", "Good", "Average", "Poor"]] = None
    branch_name: Optional[str] = None
    region_name: Optional[str] = None
    top_n: Optional[int] = None
    bands: ScoreBandsModel = Field(default_factory=ScoreBandsModel)


class SelectionChangeModel(BaseModel):
    op: Literal[
        "add",
        "remove",
        "select_all_visible",
        "deselect_all_visible",
        "clear",
        "search",
        "select_centres",
        "prune",
    ]
    level: Optional[Level] = None
    ids: List[str] = Field(default_factory=list)
    term: Optional[str] = None

    @model_validator(mode="after")
    def _check_level(self) -> "SelectionChangeModel":
        if self.op in LEVEL_OPS and self.level is None:
            raise ValueError(f"'level' is required for op {self.op!r}")
        return self


class SelectionRequestModel(BaseModel):
    region_ids: List[str] = Field(default_factory=list)
    branch_ids: List[str] = Field(default_factory=list)
    centre_ids: List[str] = Field(default_factory=list)
    search: Dict[Level, str] = Field(default_factory=dict)
    scope: Dict[Level, Optional[List[str]]] = Field(default_factory=dict)
    changes: List[SelectionChangeModel] = Field(default_factory=list)
