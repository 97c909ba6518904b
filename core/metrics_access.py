from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.filters import CascadeFilter, CascadeState, SelectionState, make_state
from core.models import LEVELS

logger = logging.getLogger(__name__)


def state_from_request(raw: Mapping[str, Any]) -> CascadeState:
    """Rebuild a ``CascadeState`` from a JSON body (selection ids, search terms, scope)."""
    selection = SelectionState.of(
        regions=raw.get("region_ids"),
        branches=raw.get("branch_ids"),
        centres=raw.get("centre_ids"),
    )
    return make_state(selection, search=raw.get("search") or {}, scope=raw.get("scope") or {})


def apply_changes(
    cascade: CascadeFilter,
    state: CascadeState,
    changes: Optional[Iterable[Mapping[str, Any]]],
) -> CascadeState:
    """Apply selection changes in order; each one sees the full state left by the previous."""
    for change in changes or []:
        op = change.get("op")
        if op == "search":
            state = cascade.set_search(state, change["level"], change.get("term"))
        elif op == "select_centres":
            state = cascade.select_centres(state, change.get("ids"))
        elif op == "prune":
            state = cascade.prune(state)
        else:
            state = cascade.mutate(state, change["level"], change.get("ids"), op)
    return state


def compute_access_editor(cascade: CascadeFilter, state: CascadeState) -> Dict[str, Any]:
    levels: Dict[str, Any] = {}
    for level in LEVELS:
        options = cascade.available_options(state, level)
        selected: List[str] = state.selection.get(level).as_list()
        out_of_scope = cascade.out_of_scope(state, level)
        if out_of_scope:
            logger.debug("%d selected %s id(s) hidden by the current scope", len(out_of_scope), level)
        levels[level] = {
            "options": [asdict(o) for o in options],
            "available_count": len(options),
            "selected": selected,
            "assigned_count": len(selected),
            "out_of_scope": out_of_scope,
            "groups": cascade.grouped_selection(state, level) if level != "region" else {},
            "search": state.search_term(level),
        }
    return {
        "selection": state.selection.as_dict(),
        "search": dict(state.search),
        "levels": levels,
    }
