from __future__ import annotations

import pytest

from core.filters import (
    CascadeState,
    Option,
    ScoreBands,
    SelectionState,
    make_state,
    matches_search,
    normalize_performance_filters,
)


def _ids(options):
    return [o.id for o in options]


def test_initial_state_shows_everything(cascade):
    state = CascadeState()
    assert cascade.available_ids(state, "region") == ["r1", "r2", "unassigned"]
    assert cascade.available_ids(state, "branch") == ["b1", "b2", "b3", "unassigned"]
    assert cascade.available_ids(state, "centre") == ["c1", "c2", "c3", "c4", "c5"]


def test_selecting_a_region_narrows_branches_and_centres(cascade, index):
    state = cascade.mutate(CascadeState(), "region", ["r1"], "add")
    branches = cascade.available_ids(state, "branch")
    centres = cascade.available_ids(state, "centre")
    assert branches == ["b1", "b2"]
    assert centres == ["c1", "c2", "c3"]
    assert all(index.branches[b].region_id == "r1" for b in branches)
    assert all(index.centres[c].region_id == "r1" for c in centres)

    state = cascade.mutate(state, "branch", ["b1"], "add")
    assert cascade.available_ids(state, "centre") == ["c1", "c2"]


def test_branch_selection_applies_without_region(cascade):
    state = cascade.mutate(CascadeState(), "branch", ["b3"], "add")
    assert cascade.available_ids(state, "centre") == ["c4"]


def test_hidden_branch_does_not_leak_centres(cascade, index):
    state = cascade.mutate(CascadeState(), "region", ["r1"], "add")
    state = cascade.mutate(state, "branch", ["b1"], "add")
    state = cascade.mutate(state, "centre", ["c1"], "add")
    state = cascade.mutate(state, "region", ["r1"], "remove")
    state = cascade.mutate(state, "region", ["r2"], "add")

    centres = cascade.available_ids(state, "centre")
    assert centres == ["c4"]
    assert all(index.centres[c].region_id == "r2" for c in centres)

    # hidden but retained until pruned
    assert state.selection.branches.as_list() == ["b1"]
    assert cascade.out_of_scope(state, "branch") == ["b1"]
    assert cascade.out_of_scope(state, "centre") == ["c1"]

    pruned = cascade.prune(state)
    assert pruned.selection.branches.as_list() == []
    assert pruned.selection.centres.as_list() == []
    assert pruned.selection.regions.as_list() == ["r2"]
    assert cascade.prune(pruned) is pruned


def test_search_filters_options_by_name_and_codes(cascade):
    state = cascade.set_search(CascadeState(), "centre", "ext-001")
    assert _ids(cascade.available_options(state, "centre")) == ["c1"]

    state = cascade.set_search(state, "centre", "al")
    assert _ids(cascade.available_options(state, "centre")) == ["c1"]

    state = cascade.set_search(CascadeState(), "branch", "ch")
    assert _ids(cascade.available_options(state, "branch")) == ["b3"]


def test_empty_search_clears_the_term(cascade):
    state = cascade.set_search(CascadeState(), "centre", "alpha")
    assert state.search_term("centre") == "alpha"
    cleared = cascade.set_search(state, "centre", "   ")
    assert cleared.search_term("centre") == ""
    assert cleared == CascadeState()


def test_select_all_on_empty_search_result_is_a_no_op(cascade):
    state = cascade.set_search(CascadeState(), "centre", "zzz")
    assert cascade.available_options(state, "centre") == []
    assert cascade.mutate(state, "centre", None, "select_all_visible") is state


def test_select_all_respects_search_and_is_idempotent(cascade):
    state = cascade.set_search(CascadeState(), "region", "west")
    once = cascade.mutate(state, "region", None, "select_all_visible")
    assert once.selection.regions.as_list() == ["r1"]
    assert cascade.mutate(once, "region", None, "select_all_visible") is once
    assert cascade.mutate(once, "region", None, "selectAllVisible") is once


def test_deselect_all_and_clear_are_idempotent(cascade):
    state = cascade.mutate(CascadeState(), "centre", ["c1", "c4"], "add")
    state = cascade.mutate(state, "region", ["r1"], "add")
    once = cascade.mutate(state, "centre", None, "deselect_all_visible")
    assert once.selection.centres.as_list() == ["c4"]
    assert cascade.mutate(once, "centre", None, "deselect_all_visible") is once

    cleared = cascade.mutate(once, "centre", None, "clear")
    assert cleared.selection.centres.as_list() == []
    assert cascade.mutate(cleared, "centre", None, "clear") is cleared


def test_invalid_level_or_op_raises(cascade):
    with pytest.raises(ValueError):
        cascade.mutate(CascadeState(), "country", ["x"], "add")
    with pytest.raises(ValueError):
        cascade.mutate(CascadeState(), "region", ["r1"], "toggle")


def test_select_centres_derives_parents(cascade):
    state = cascade.select_centres(CascadeState(), ["c4", "c1", "missing", "c2"])
    assert state.selection.as_dict() == {
        "region_ids": ["r2", "r1"],
        "branch_ids": ["b3", "b1"],
        "centre_ids": ["c4", "c1", "c2"],
    }


def test_scope_restricts_availability_and_quick_selection(cascade):
    state = make_state(scope={"centre": ["c1", "c4"], "region": None})
    assert cascade.available_ids(state, "centre") == ["c1", "c4"]
    assert cascade.available_ids(state, "region") == ["r1", "r2", "unassigned"]

    picked = cascade.select_centres(state, ["c2", "c4"])
    assert picked.selection.centres.as_list() == ["c4"]
    assert picked.scope == state.scope


def test_grouped_selection_uses_parent_labels(cascade):
    state = cascade.mutate(CascadeState(), "centre", ["c1", "c4", "c2"], "add")
    assert cascade.grouped_selection(state, "centre") == {
        "West (W) > Pune (PN)": ["c1", "c2"],
        "South (S) > Chennai (CH)": ["c4"],
    }


def test_make_state_drops_blank_search_and_checks_levels():
    state = make_state(SelectionState.of(regions=["r1"]), search={"centre": " al ", "branch": ""})
    assert state.search == (("centre", "al"),)
    with pytest.raises(ValueError):
        make_state(search={"planet": "x"})


def test_matches_search():
    option = Option(id="c1", name="Alpha", code="AL", external_code="EXT-001")
    assert matches_search(option, "")
    assert matches_search(option, "alp")
    assert matches_search(option, "ext")
    assert not matches_search(option, "beta")


def test_normalize_performance_filters():
    f = normalize_performance_filters(
        {
            "sort_by": "bogus",
            "sort_order": "UP",
            "search": "  pune ",
            "rating": "poor",
            "branch_name": "All",
            "top_n": 1000,
        }
    )
    assert f.sort_by == "business"
    assert f.sort_order == "desc"
    assert f.search == "pune"
    assert f.rating == "Poor"
    assert f.branch_name is None
    assert f.top_n == 500
    assert f.bands == ScoreBands()

    assert normalize_performance_filters({"top_n": 0}).top_n == 1
    assert normalize_performance_filters({"top_n": "many"}).top_n is None


def test_unordered_bands_fall_back_to_defaults():
    f = normalize_performance_filters({"bands": {"excellent": 1, "good": 10, "average": 5}})
    assert f.bands == ScoreBands()
    custom = normalize_performance_filters({"bands": {"excellent": 30, "good": 20, "average": 0}})
    assert custom.bands == ScoreBands(excellent=30, good=20, average=0)
