"""Core (UI-agnostic) ad-expense dashboard logic.

This package contains:
- hierarchy indexing (Region -> Branch -> Centre)
- cascading selection filters
- monthly metrics aggregation, rating and ranking
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
