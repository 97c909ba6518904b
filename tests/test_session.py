from __future__ import annotations

import pytest

from core.data import build_data_context
from core.filters import PerformanceFilters
from core.models import AggregateMetrics
from core.session import DashboardSession


@pytest.fixture()
def session(data_ctx):
    return DashboardSession(data_ctx)


def _names(rows):
    return [r["name"] for r in rows]


def test_get_aggregates(session):
    alpha = session.get_aggregates("c1")
    assert alpha.business_total == 500
    assert alpha.ad_percentage == pytest.approx(6.0)
    assert alpha.trend == "up"
    assert alpha.rating == "Excellent"

    charlie = session.get_aggregates("c3")
    assert charlie.trend == "down"
    assert charlie.rating == "Average"

    assert session.get_aggregates("c5") == AggregateMetrics()
    assert session.get_aggregates("unknown") == AggregateMetrics()


def test_get_series_is_sorted_by_period(session):
    series = session.get_series("c3")
    assert series["period"].tolist() == ["2024-01", "2024-02"]


def test_get_ranked_defaults_to_business_desc(session):
    rows = session.get_ranked()
    assert _names(rows) == ["Alpha", "Charlie", "Bravo", "Delta", "Echo"]
    assert [r["rank"] for r in rows] == [1, 2, 3, 4, 5]
    assert rows[0]["region_name"] == "West"


def test_get_ranked_follows_the_selection(session):
    session.mutate_selection("region", ["r2"], "add")
    assert session.centres_in_view() == ["c4"]
    assert _names(session.get_ranked()) == ["Delta"]

    session.mutate_selection("region", None, "clear")
    session.mutate_selection("centre", ["c2", "c1"], "add")
    assert _names(session.get_ranked("name", "asc")) == ["Alpha", "Bravo"]


def test_get_ranked_with_filters(session):
    rows = session.get_ranked(filters=PerformanceFilters(sort_by="roi", rating="Excellent"))
    assert _names(rows) == ["Alpha"]


def test_selection_flow_and_commit(session):
    assert not session.has_unsaved_changes
    session.mutate_selection("region", ["r1"], "add")
    session.set_search("branch", "pune")
    assert [o.id for o in session.get_available_options("branch")] == ["b1"]
    session.mutate_selection("branch", None, "select_all_visible")
    assert session.get_selection("branch") == ["b1"]
    assert session.has_unsaved_changes

    saved = session.commit()
    assert saved.branches.as_list() == ["b1"]
    assert session.saved_state == session.state.selection
    assert not session.has_unsaved_changes

    session.mutate_selection("region", ["r1"], "remove")
    session.mutate_selection("region", ["r2"], "add")
    assert session.out_of_scope("branch") == ["b1"]
    assert session.saved_state.regions.as_list() == ["r1"]
    session.prune()
    assert session.get_selection("branch") == []


def test_quick_selection_and_grouping(session):
    session.select_centres(["c4", "c1"])
    assert session.get_selection("region") == ["r2", "r1"]
    assert session.grouped_selection("centre") == {
        "South (S) > Chennai (CH)": ["c4"],
        "West (W) > Pune (PN)": ["c1"],
    }


def test_scoped_session(data_ctx):
    session = DashboardSession(data_ctx, scope={"centre": ["c1", "c3"]})
    assert [o.id for o in session.get_available_options("centre")] == ["c1", "c3"]
    assert _names(session.get_ranked()) == ["Alpha", "Charlie"]


def test_from_records_and_empty_input(centre_records, performance_payload):
    session = DashboardSession.from_records(centre_records, performance_payload)
    assert session.get_aggregates("c2").rating == "Good"

    empty = DashboardSession(build_data_context())
    assert empty.get_available_options("region") == []
    assert empty.get_ranked() == []


def test_sort_arguments_override_filters(session):
    filters = PerformanceFilters(sort_by="business", sort_order="desc", region_name="West")
    assert _names(session.get_ranked(filters=filters)) == ["Alpha", "Charlie", "Bravo"]
    assert _names(session.get_ranked("name", "asc", filters=filters)) == ["Alpha", "Bravo", "Charlie"]
    assert _names(session.get_ranked(direction="asc", filters=filters)) == ["Bravo", "Charlie", "Alpha"]
