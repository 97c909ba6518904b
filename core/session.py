"""One editing/reviewing session over an immutable centre snapshot.

The session is the single owner of the selection. Edits go through
``mutate_selection`` and friends, each of which swaps in a complete new
``CascadeState``. ``commit`` copies the current selection into
``saved_state``; nothing flows back the other way.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from core.data import build_data_context
from core.filters import (
    CascadeFilter,
    CascadeState,
    Option,
    PerformanceFilters,
    ScoreBands,
    SelectionState,
    make_state,
)
from core.hierarchy import HierarchyIndex
from core.metrics import aggregate_frame, aggregate_metrics, period_series
from core.models import AggregateMetrics, Level, check_level
from core.ranking import apply_performance_filters

logger = logging.getLogger(__name__)


class DashboardSession:
    def __init__(
        self,
        data_ctx: Mapping[str, Any],
        *,
        scope: Optional[Mapping[str, Optional[Iterable[object]]]] = None,
        bands: Optional[ScoreBands] = None,
    ) -> None:
        self.index: HierarchyIndex = data_ctx.get("index") or HierarchyIndex()
        monthly: pd.DataFrame = data_ctx.get("monthly", pd.DataFrame())
        self.bands = bands or ScoreBands()
        self.cascade = CascadeFilter(self.index)
        self.state: CascadeState = make_state(scope=scope)
        self.saved_state: SelectionState = self.state.selection
        self._monthly_by_centre: Dict[str, pd.DataFrame] = {}
        if not monthly.empty:
            self._monthly_by_centre = {str(cid): g for cid, g in monthly.groupby("centre_id", sort=False)}

    @classmethod
    def from_records(
        cls,
        centres: Optional[Iterable[Mapping[str, Any]]] = None,
        performance: Any = None,
        **kwargs: Any,
    ) -> DashboardSession:
        return cls(build_data_context(centres, performance), **kwargs)

    # ---------------- Selection ----------------
    def get_available_options(self, level: Level) -> List[Option]:
        return self.cascade.available_options(self.state, level)

    def get_selection(self, level: Level) -> List[str]:
        return self.state.selection.get(check_level(level)).as_list()

    def mutate_selection(self, level: Level, ids: Optional[Iterable[object]], op: str) -> CascadeState:
        self.state = self.cascade.mutate(self.state, level, ids, op)
        return self.state

    def set_search(self, level: Level, term: Optional[str]) -> CascadeState:
        self.state = self.cascade.set_search(self.state, level, term)
        return self.state

    def select_centres(self, centre_ids: Optional[Iterable[object]]) -> CascadeState:
        self.state = self.cascade.select_centres(self.state, centre_ids)
        return self.state

    def out_of_scope(self, level: Level) -> List[str]:
        return self.cascade.out_of_scope(self.state, level)

    def prune(self) -> CascadeState:
        self.state = self.cascade.prune(self.state)
        return self.state

    def grouped_selection(self, level: Level) -> Dict[str, List[str]]:
        return self.cascade.grouped_selection(self.state, level)

    def commit(self) -> SelectionState:
        self.saved_state = self.state.selection
        logger.info(
            "Committed selection: %d region(s), %d branch(es), %d centre(s)",
            len(self.saved_state.regions),
            len(self.saved_state.branches),
            len(self.saved_state.centres),
        )
        return self.saved_state

    @property
    def has_unsaved_changes(self) -> bool:
        return self.saved_state != self.state.selection

    # ---------------- Metrics ----------------
    def get_aggregates(self, centre_id: object) -> AggregateMetrics:
        return aggregate_metrics(self._monthly_by_centre.get(str(centre_id)), self.bands)

    def get_series(self, centre_id: object) -> pd.DataFrame:
        return period_series(self._monthly_by_centre.get(str(centre_id)), self.bands)

    def centres_in_view(self) -> List[str]:
        """Selected centres, or every centre the region/branch selection leaves available."""
        selected = self.get_selection("centre")
        if selected:
            return [c for c in selected if c in self.index.centres]
        return self.cascade.hierarchy_ids(self.state, "centre")

    def get_ranked(
        self,
        sort_key: Optional[str] = None,
        direction: Optional[str] = None,
        *,
        filters: Optional[PerformanceFilters] = None,
    ) -> List[Dict[str, Any]]:
        """Rank the centres in view. ``sort_key`` / ``direction`` override the sort carried by ``filters``."""
        filt = filters or PerformanceFilters(bands=self.bands)
        if sort_key is not None:
            filt = replace(filt, sort_by=sort_key)
        if direction is not None:
            filt = replace(filt, sort_order=direction)
        ids = set(self.centres_in_view())
        centres = self.index.to_frame()
        centres = centres[centres["centre_id"].isin(ids)]
        monthly = pd.concat(
            [g for cid, g in self._monthly_by_centre.items() if cid in ids] or [pd.DataFrame()],
            ignore_index=True,
        )
        metrics = aggregate_frame(monthly, centres["centre_id"].tolist(), filt.bands)
        table = centres.merge(metrics, on="centre_id", how="left")
        return apply_performance_filters(table, filt).to_dict(orient="records")
