"""Region -> Branch -> Centre lookups built from a flat list of centre records.

Centre records coming from the backend carry their parents either as bare ids
(``"branchId": "b1"``) or as populated objects
(``"branchId": {"_id": "b1", "name": "North", "shortCode": "NO"}``). Both are
normalized here, once, into ``str`` ids plus a display-name side table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from core.models import (
    UNASSIGNED_ID,
    UNASSIGNED_NAME,
    Branch,
    Centre,
    Level,
    Region,
    check_level,
    normalize_id,
)

logger = logging.getLogger(__name__)

CENTRE_COLUMNS = [
    "centre_id",
    "name",
    "external_code",
    "short_code",
    "branch_id",
    "branch_name",
    "region_id",
    "region_name",
]

_BRANCH_KEYS = ("branchId", "branch_id", "branchRef", "branch")
_REGION_KEYS = ("regionId", "region_id", "regionRef", "region")


def _clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _first(record: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def normalize_ref(value: object) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Return ``(id, name, code)`` for a bare id or an embedded parent object."""
    if isinstance(value, Mapping):
        ref_id = normalize_id(_first(value, ("id", "_id")))
        name = _clean_text(value.get("name"))
        code = _clean_text(_first(value, ("shortCode", "short_code", "code")))
        return ref_id, name, code
    return normalize_id(value), None, None


@dataclass(frozen=True)
class Discrepancy:
    centre_id: str
    declared_region_id: str
    branch_region_id: str


def _unassigned_branch_id(region_id: str) -> str:
    if region_id == UNASSIGNED_ID:
        return UNASSIGNED_ID
    return f"{region_id}:{UNASSIGNED_ID}"


class HierarchyIndex:
    """
    Parent/child lookups over an immutable snapshot of centres.

    ``regions`` / ``branches`` are optional explicit master lists. When given,
    a centre reference is only resolved if it appears in them (or carries its
    own name); otherwise any non-empty reference counts as present.
    """

    def __init__(
        self,
        centres: Optional[Iterable[Mapping[str, Any]]] = None,
        *,
        regions: Optional[Iterable[Mapping[str, Any]]] = None,
        branches: Optional[Iterable[Mapping[str, Any]]] = None,
    ) -> None:
        self.regions: Dict[str, Region] = {}
        self.branches: Dict[str, Branch] = {}
        self.centres: Dict[str, Centre] = {}
        self.branches_by_region: Dict[str, List[str]] = {}
        self.centres_by_region: Dict[str, List[str]] = {}
        self.centres_by_branch: Dict[str, List[str]] = {}
        self.incomplete: Dict[str, str] = {}
        self.discrepancies: List[Discrepancy] = []
        self.skipped = 0
        self._build(list(centres or []), regions, branches)

    # ---------------- Build ----------------
    def _build(
        self,
        records: List[Mapping[str, Any]],
        regions: Optional[Iterable[Mapping[str, Any]]],
        branches: Optional[Iterable[Mapping[str, Any]]],
    ) -> None:
        strict = regions is not None or branches is not None
        region_names: Dict[str, Tuple[Optional[str], Optional[str]]] = {}
        branch_meta: Dict[str, Tuple[Optional[str], Optional[str], Optional[str]]] = {}

        for raw in regions or []:
            rid, name, code = normalize_ref(raw)
            if rid:
                region_names[rid] = (name, code)
        for raw in branches or []:
            bid, name, code = normalize_ref(raw)
            if bid:
                parent, _, _ = normalize_ref(_first(raw, _REGION_KEYS))
                branch_meta[bid] = (name, code, parent)

        parsed = []
        for raw in records:
            if not isinstance(raw, Mapping):
                self.skipped += 1
                logger.warning("Skipping centre record of type %s", type(raw).__name__)
                continue
            centre_id = normalize_id(_first(raw, ("id", "_id")))
            if centre_id is None:
                self.skipped += 1
                logger.warning("Skipping centre record without an id: %r", dict(raw).get("name"))
                continue
            bid, bname, bcode = normalize_ref(_first(raw, _BRANCH_KEYS))
            rid, rname, rcode = normalize_ref(_first(raw, _REGION_KEYS))
            bname = bname or _clean_text(raw.get("branchName"))
            rname = rname or _clean_text(raw.get("regionName"))
            if rid and (rname or not strict):
                prev_name, prev_code = region_names.get(rid, (None, None))
                region_names[rid] = (prev_name or rname, prev_code or rcode)
            if bid and (bname or not strict):
                prev_name, prev_code, prev_parent = branch_meta.get(bid, (None, None, None))
                branch_meta[bid] = (prev_name or bname, prev_code or bcode, prev_parent or rid)
            parsed.append((centre_id, raw, bid, rid))

        for centre_id, raw, bid, rid in parsed:
            self._add_centre(centre_id, raw, bid, rid, region_names, branch_meta)

        if self.incomplete:
            logger.warning("%d centre(s) indexed under %s", len(self.incomplete), UNASSIGNED_NAME)

    def _ensure_region(self, rid: str, region_names: Dict[str, Tuple[Optional[str], Optional[str]]]) -> str:
        if rid not in self.regions:
            if rid == UNASSIGNED_ID:
                self.regions[rid] = Region(id=rid, name=UNASSIGNED_NAME)
            else:
                name, code = region_names.get(rid, (None, None))
                self.regions[rid] = Region(id=rid, name=name or rid, code=code)
            self.branches_by_region.setdefault(rid, [])
            self.centres_by_region.setdefault(rid, [])
        return rid

    def _ensure_branch(self, bid: str, name: Optional[str], code: Optional[str], rid: str) -> str:
        if bid not in self.branches:
            self.branches[bid] = Branch(id=bid, name=name or bid, region_id=rid, code=code)
            self.branches_by_region[rid].append(bid)
            self.centres_by_branch.setdefault(bid, [])
        return bid

    def _add_centre(
        self,
        centre_id: str,
        raw: Mapping[str, Any],
        bid: Optional[str],
        rid: Optional[str],
        region_names: Dict[str, Tuple[Optional[str], Optional[str]]],
        branch_meta: Dict[str, Tuple[Optional[str], Optional[str], Optional[str]]],
    ) -> None:
        if centre_id in self.centres:
            logger.warning("Duplicate centre id %s; keeping the first record", centre_id)
            return

        reasons: List[str] = []
        known_region = rid if rid in region_names else None
        if rid is None:
            reasons.append("missing region")
        elif known_region is None:
            reasons.append(f"unknown region {rid!r}")

        if bid is None:
            reasons.append("missing branch")
        elif bid not in branch_meta:
            reasons.append(f"unknown branch {bid!r}")

        if bid is not None and bid in branch_meta:
            bname, bcode, parent = branch_meta[bid]
            branch_region = parent if parent in region_names else None
            if branch_region is None and bid in self.branches:
                branch_region = self.branches[bid].region_id
            if branch_region is None:
                branch_region = known_region or UNASSIGNED_ID
            elif known_region is not None and known_region != branch_region:
                logger.warning(
                    "Centre %s declares region %s but its branch %s belongs to region %s; using the branch's region",
                    centre_id,
                    known_region,
                    bid,
                    branch_region,
                )
                self.discrepancies.append(
                    Discrepancy(centre_id=centre_id, declared_region_id=known_region, branch_region_id=branch_region)
                )
            if branch_region != UNASSIGNED_ID:
                # the branch resolves the region even when the centre's own ref did not
                reasons = [r for r in reasons if "region" not in r]
            region_id = self._ensure_region(branch_region, region_names)
            branch_id = self._ensure_branch(bid, bname, bcode, region_id)
        else:
            region_id = self._ensure_region(known_region or UNASSIGNED_ID, region_names)
            branch_id = self._ensure_branch(_unassigned_branch_id(region_id), UNASSIGNED_NAME, None, region_id)

        if reasons:
            self.incomplete[centre_id] = "; ".join(reasons)

        self.centres[centre_id] = Centre(
            id=centre_id,
            name=_clean_text(raw.get("name")) or centre_id,
            branch_id=branch_id,
            region_id=region_id,
            external_code=_clean_text(_first(raw, ("centreId", "externalCode", "external_code"))),
            short_code=_clean_text(_first(raw, ("shortCode", "short_code"))),
        )
        self.centres_by_region[region_id].append(centre_id)
        self.centres_by_branch[branch_id].append(centre_id)

    # ---------------- Lookups ----------------
    @property
    def is_empty(self) -> bool:
        return not self.centres

    def entities(self, level: Level) -> Dict[str, Any]:
        level = check_level(level)
        if level == "region":
            return self.regions
        if level == "branch":
            return self.branches
        return self.centres

    def label(self, level: Level, entity_id: str) -> str:
        entity = self.entities(level).get(entity_id)
        return entity.name if entity is not None else UNASSIGNED_NAME

    def code(self, level: Level, entity_id: str) -> Optional[str]:
        entity = self.entities(level).get(entity_id)
        if entity is None:
            return None
        if level == "centre":
            return entity.short_code
        return entity.code

    def _coded_label(self, level: Level, entity_id: str) -> str:
        name = self.label(level, entity_id)
        code = self.code(level, entity_id)
        return f"{name} ({code})" if code else name

    def group_label(self, level: Level, entity_id: str) -> Optional[str]:
        """Parent path used to group selected items, e.g. ``"West (W) > Pune (PN)"`` for a centre."""
        level = check_level(level)
        if level == "branch":
            branch = self.branches.get(entity_id)
            return self._coded_label("region", branch.region_id) if branch else UNASSIGNED_NAME
        if level == "centre":
            centre = self.centres.get(entity_id)
            if centre is None:
                return UNASSIGNED_NAME
            return f"{self._coded_label('region', centre.region_id)} > {self._coded_label('branch', centre.branch_id)}"
        return None

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "centre_id": c.id,
                "name": c.name,
                "external_code": c.external_code,
                "short_code": c.short_code,
                "branch_id": c.branch_id,
                "branch_name": self.label("branch", c.branch_id),
                "region_id": c.region_id,
                "region_name": self.label("region", c.region_id),
            }
            for c in self.centres.values()
        ]
        return pd.DataFrame(rows, columns=CENTRE_COLUMNS)
