from __future__ import annotations

from dataclasses import asdict
import logging
import math

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from api.schemas import PerformanceFiltersModel, ScoreBandsModel, SelectionRequestModel
from core.data import load_dashboard_data, prepare_context
from core.filters import CascadeFilter, PerformanceFilters, normalize_performance_filters
from core.hierarchy import HierarchyIndex
from core.metrics_access import apply_changes, compute_access_editor, state_from_request
from core.metrics_performance import compute_centre_detail, compute_performance


app = FastAPI(title="Ad Expense Performance API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: PerformanceFiltersModel) -> PerformanceFilters:
    return normalize_performance_filters(model.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/meta/hierarchy")
def meta_hierarchy():
    try:
        data_ctx = load_dashboard_data()
        index: HierarchyIndex = data_ctx["index"]
        return _json(
            {
                "regions": [asdict(r) for r in index.regions.values()],
                "branches": [asdict(b) for b in index.branches.values()],
                "centres": [asdict(c) for c in index.centres.values()],
                "incomplete": index.incomplete,
                "discrepancies": [asdict(d) for d in index.discrepancies],
                "periods": data_ctx.get("periods", []),
                "files": data_ctx.get("files", []),
            }
        )
    except Exception as exc:
        logger.exception("meta_hierarchy failed")
        return _error(exc)


@app.post("/performance")
def performance(filters: PerformanceFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_performance(f, ctx))
    except Exception as exc:
        logger.exception("performance failed")
        return _error(exc)


@app.get("/centres/{centre_id}/aggregates")
def centre_aggregates(centre_id: str, excellent: float = 15.0, good: float = 10.0, average: float = 5.0):
    try:
        bands = normalize_performance_filters(
            {"bands": ScoreBandsModel(excellent=excellent, good=good, average=average).model_dump()}
        ).bands
        data_ctx = load_dashboard_data()
        detail = compute_centre_detail(centre_id, data_ctx, bands)
        if detail is None:
            return JSONResponse(
                status_code=404,
                content={"error": f"Unknown centre: {centre_id}", "type": "NotFound"},
            )
        return _json(detail)
    except Exception as exc:
        logger.exception("centre_aggregates failed")
        return _error(exc)


@app.post("/selection")
def selection(request: SelectionRequestModel):
    try:
        data_ctx = load_dashboard_data()
        cascade = CascadeFilter(data_ctx["index"])
        raw = request.model_dump()
        state = state_from_request(raw)
        state = apply_changes(cascade, state, raw.get("changes"))
        return _json(compute_access_editor(cascade, state))
    except ValueError as exc:
        logger.warning("selection rejected: %s", exc)
        return _error(exc, status_code=400)
    except Exception as exc:
        logger.exception("selection failed")
        return _error(exc)
