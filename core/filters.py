from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Tuple

from core.hierarchy import HierarchyIndex
from core.models import LEVELS, Level, check_level
from core.selection import SelectionSet

logger = logging.getLogger(__name__)

SortKey = Literal["business", "expense", "roi", "name", "performance_score"]
SortOrder = Literal["asc", "desc"]
SelectionOp = Literal["add", "remove", "select_all_visible", "deselect_all_visible", "clear"]

SORT_KEYS = ("business", "expense", "roi", "name", "performance_score")
SELECTION_OPS = ("add", "remove", "select_all_visible", "deselect_all_visible", "clear")
RATINGS = ("Excellent", "Good", "Average", "Poor")

_OP_ALIASES = {
    "selectAllVisible": "select_all_visible",
    "deselectAllVisible": "deselect_all_visible",
}


@dataclass(frozen=True)
class ScoreBands:
    excellent: float = 15.0
    good: float = 10.0
    average: float = 5.0


@dataclass(frozen=True)
class PerformanceFilters:
    sort_by: str = "business"
    sort_order: str = "desc"
    search: str = ""
    rating: Optional[str] = None
    branch_name: Optional[str] = None
    region_name: Optional[str] = None
    top_n: Optional[int] = None
    bands: ScoreBands = field(default_factory=ScoreBands)


def _as_optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() == "all":
        return None
    return s


def normalize_performance_filters(raw: Mapping[str, object]) -> PerformanceFilters:
    sort_by = str(raw.get("sort_by") or "business")
    if sort_by not in SORT_KEYS:
        sort_by = "business"
    sort_order = str(raw.get("sort_order") or "desc").lower()
    if sort_order not in ("asc", "desc"):
        sort_order = "desc"

    rating = _as_optional_str(raw.get("rating"))
    if rating is not None:
        rating = rating.capitalize()
        if rating not in RATINGS:
            rating = None

    top_n = raw.get("top_n")
    if top_n is not None:
        try:
            top_n = max(1, min(500, int(top_n)))
        except Exception:
            top_n = None

    b = raw.get("bands") or {}
    bands = ScoreBands(
        excellent=float(b.get("excellent", 15.0)),
        good=float(b.get("good", 10.0)),
        average=float(b.get("average", 5.0)),
    )
    if not bands.average <= bands.good <= bands.excellent:
        logger.warning("Ignoring unordered score bands %s", bands)
        bands = ScoreBands()

    return PerformanceFilters(
        sort_by=sort_by,
        sort_order=sort_order,
        search=str(raw.get("search") or "").strip(),
        rating=rating,
        branch_name=_as_optional_str(raw.get("branch_name")),
        region_name=_as_optional_str(raw.get("region_name")),
        top_n=top_n,
        bands=bands,
    )


# ---------------- Cascading selection ----------------
@dataclass(frozen=True)
class SelectionState:
    regions: SelectionSet = field(default_factory=SelectionSet)
    branches: SelectionSet = field(default_factory=SelectionSet)
    centres: SelectionSet = field(default_factory=SelectionSet)

    @classmethod
    def of(
        cls,
        regions: Optional[Iterable[object]] = None,
        branches: Optional[Iterable[object]] = None,
        centres: Optional[Iterable[object]] = None,
    ) -> SelectionState:
        return cls(SelectionSet.of(regions), SelectionSet.of(branches), SelectionSet.of(centres))

    def get(self, level: Level) -> SelectionSet:
        return getattr(self, _field_for(level))

    def with_level(self, level: Level, selection: SelectionSet) -> SelectionState:
        return replace(self, **{_field_for(level): selection})

    def as_dict(self) -> Dict[str, List[str]]:
        return {
            "region_ids": self.regions.as_list(),
            "branch_ids": self.branches.as_list(),
            "centre_ids": self.centres.as_list(),
        }


def _field_for(level: Level) -> str:
    return {"region": "regions", "branch": "branches", "centre": "centres"}[check_level(level)]


@dataclass(frozen=True)
class CascadeState:
    """Complete editing state of one session: selections, per-level search terms and access scope."""

    selection: SelectionState = field(default_factory=SelectionState)
    search: Tuple[Tuple[str, str], ...] = ()
    scope: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    def search_term(self, level: Level) -> str:
        return dict(self.search).get(level, "")

    def scope_for(self, level: Level) -> Optional[Tuple[str, ...]]:
        return dict(self.scope).get(level)


def make_state(
    selection: Optional[SelectionState] = None,
    *,
    search: Optional[Mapping[str, str]] = None,
    scope: Optional[Mapping[str, Optional[Iterable[object]]]] = None,
) -> CascadeState:
    terms = tuple((check_level(k), str(v or "").strip()) for k, v in (search or {}).items() if str(v or "").strip())
    allowed = tuple(
        (check_level(k), SelectionSet.of(v).ids) for k, v in (scope or {}).items() if v is not None
    )
    return CascadeState(selection=selection or SelectionState(), search=terms, scope=allowed)


@dataclass(frozen=True)
class Option:
    id: str
    name: str
    code: Optional[str] = None
    external_code: Optional[str] = None
    group: Optional[str] = None


def matches_search(option: Option, term: str) -> bool:
    """Case-insensitive substring match on name, short code and (centres only) external code."""
    q = (term or "").strip().lower()
    if not q:
        return True
    fields = [option.name, option.code, option.external_code]
    return any(q in str(f).lower() for f in fields if f)


class CascadeFilter:
    """
    Derives available options per level from a ``CascadeState``.

    The filter itself holds no selection. Every transition takes a state and
    returns the complete next state, so a half-applied cascade is never
    observable.
    """

    def __init__(self, index: HierarchyIndex) -> None:
        self.index = index

    # ---------------- Availability ----------------
    def _scoped(self, state: CascadeState, level: Level, ids: Iterable[str]) -> List[str]:
        allowed = state.scope_for(level)
        if allowed is None:
            return list(ids)
        allowed_set = set(allowed)
        return [i for i in ids if i in allowed_set]

    def hierarchy_ids(self, state: CascadeState, level: Level) -> List[str]:
        """Ids available at ``level`` from the parent selections alone (no search)."""
        level = check_level(level)
        idx = self.index
        regions = state.selection.regions
        if level == "region":
            ids: List[str] = list(idx.regions)
        elif level == "branch":
            if regions:
                wanted = set(regions)
                ids = [b for b in idx.branches if idx.branches[b].region_id in wanted]
            else:
                ids = list(idx.branches)
        else:
            # selected-but-hidden branches do not widen the centre list
            visible_branches = set(self.hierarchy_ids(state, "branch"))
            branches = [b for b in state.selection.branches if b in visible_branches]
            if branches:
                wanted_branches = set(branches)
                ids = [c for c in idx.centres if idx.centres[c].branch_id in wanted_branches]
            elif regions:
                wanted_regions = set(regions)
                ids = [c for c in idx.centres if idx.centres[c].region_id in wanted_regions]
            else:
                ids = list(idx.centres)
        return self._scoped(state, level, ids)

    def _option(self, level: Level, entity_id: str) -> Option:
        idx = self.index
        entity = idx.entities(level)[entity_id]
        if level == "centre":
            return Option(
                id=entity.id,
                name=entity.name,
                code=entity.short_code,
                external_code=entity.external_code,
                group=idx.group_label(level, entity_id),
            )
        return Option(id=entity.id, name=entity.name, code=entity.code, group=idx.group_label(level, entity_id))

    def available_options(self, state: CascadeState, level: Level) -> List[Option]:
        term = state.search_term(level)
        options = [self._option(level, i) for i in self.hierarchy_ids(state, level)]
        return [o for o in options if matches_search(o, term)]

    def available_ids(self, state: CascadeState, level: Level) -> List[str]:
        return [o.id for o in self.available_options(state, level)]

    def out_of_scope(self, state: CascadeState, level: Level) -> List[str]:
        """Selected ids that the current parent selection no longer makes available."""
        available = set(self.hierarchy_ids(state, level))
        return [i for i in state.selection.get(level) if i not in available]

    # ---------------- Transitions ----------------
    def mutate(
        self,
        state: CascadeState,
        level: Level,
        ids: Optional[Iterable[object]],
        op: str,
    ) -> CascadeState:
        level = check_level(level)
        op = _OP_ALIASES.get(op, op)
        current = state.selection.get(level)
        if op == "add":
            updated = current.add(ids)
        elif op == "remove":
            updated = current.remove(ids)
        elif op == "select_all_visible":
            updated = current.select_all(self.available_ids(state, level))
        elif op == "deselect_all_visible":
            updated = current.deselect_all(self.available_ids(state, level))
        elif op == "clear":
            updated = current.clear()
        else:
            raise ValueError(f"Unknown selection op: {op!r}")
        if updated is current:
            return state
        return replace(state, selection=state.selection.with_level(level, updated))

    def set_search(self, state: CascadeState, level: Level, term: Optional[str]) -> CascadeState:
        level = check_level(level)
        terms = dict(state.search)
        term = (term or "").strip()
        if term:
            terms[level] = term
        else:
            terms.pop(level, None)
        return replace(state, search=tuple((lvl, terms[lvl]) for lvl in LEVELS if lvl in terms))

    def prune(self, state: CascadeState) -> CascadeState:
        """Drop selected branches/centres that fell out of the current parent scope."""
        next_state = state
        for level in ("branch", "centre"):
            stale = self.out_of_scope(next_state, level)
            if stale:
                logger.info("Pruning %d out-of-scope %s id(s)", len(stale), level)
                pruned = next_state.selection.get(level).remove(stale)
                next_state = replace(next_state, selection=next_state.selection.with_level(level, pruned))
        return next_state

    def select_centres(self, state: CascadeState, centre_ids: Optional[Iterable[object]]) -> CascadeState:
        """Quick selection: pick centres and derive their regions and branches."""
        idx = self.index
        allowed = state.scope_for("centre")
        centres = [
            c
            for c in SelectionSet.of(centre_ids)
            if c in idx.centres and (allowed is None or c in allowed)
        ]
        selection = SelectionState.of(
            regions=[idx.centres[c].region_id for c in centres],
            branches=[idx.centres[c].branch_id for c in centres],
            centres=centres,
        )
        return replace(state, selection=selection)

    def grouped_selection(self, state: CascadeState, level: Level) -> Dict[str, List[str]]:
        """Selected ids grouped under their parent label, in selection order."""
        level = check_level(level)
        groups: Dict[str, List[str]] = {}
        for entity_id in state.selection.get(level):
            key = self.index.group_label(level, entity_id) or ""
            groups.setdefault(key, []).append(entity_id)
        return groups
