from __future__ import annotations

import pytest

from core.data import build_data_context
from core.filters import CascadeFilter
from core.hierarchy import HierarchyIndex


def _month(period, ad, business):
    return {"month": period, "adExpenseTotal": ad, "businessTotal": business}


@pytest.fixture()
def centre_records():
    return [
        {
            "_id": "c1",
            "name": "Alpha",
            "centreId": "EXT-001",
            "shortCode": "AL",
            "branchId": {"_id": "b1", "name": "Pune", "shortCode": "PN"},
            "regionId": {"_id": "r1", "name": "West", "shortCode": "W"},
        },
        {"_id": "c2", "name": "Bravo", "centreId": "EXT-002", "branchId": "b1", "regionId": "r1"},
        {
            "_id": "c3",
            "name": "Charlie",
            "branchId": {"_id": "b2", "name": "Nashik"},
            "regionId": {"_id": "r1", "name": "West"},
        },
        {
            "_id": "c4",
            "name": "Delta",
            "branchId": {"_id": "b3", "name": "Chennai", "shortCode": "CH"},
            "regionId": {"_id": "r2", "name": "South", "shortCode": "S"},
        },
        {"_id": "c5", "name": "Echo"},
    ]


@pytest.fixture()
def performance_payload():
    return {
        "data": [
            {"centre": {"_id": "c1"}, "monthly": [_month("2024-01", 10, 100), _month("2024-02", 20, 400)]},
            {"centre": {"_id": "c2"}, "monthly": [_month("2024-01", 50, 200)]},
            {"centre": {"_id": "c3"}, "monthly": [_month("2024-02", 60, 150), _month("2024-01", 40, 200)]},
            {"centre": {"_id": "c4"}, "monthly": [_month("2024-01", 100, 100)]},
        ]
    }


@pytest.fixture()
def index(centre_records):
    return HierarchyIndex(centre_records)


@pytest.fixture()
def cascade(index):
    return CascadeFilter(index)


@pytest.fixture()
def data_ctx(centre_records, performance_payload):
    return build_data_context(centre_records, performance_payload)
