from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from core.models import normalize_id


def _as_id_tuple(values: Optional[Iterable[object]]) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, (str, bytes)):
        values = [values]
    out: List[str] = []
    seen = set()
    for v in values:
        ref = normalize_id(v)
        if ref is None or ref in seen:
            continue
        seen.add(ref)
        out.append(ref)
    return tuple(out)


@dataclass(frozen=True)
class SelectionSet:
    """Ordered, de-duplicated set of ids. Every operation returns a new instance."""

    ids: Tuple[str, ...] = ()

    @classmethod
    def of(cls, values: Optional[Iterable[object]] = None) -> SelectionSet:
        return cls(_as_id_tuple(values))

    def __contains__(self, item: object) -> bool:
        return normalize_id(item) in self.ids

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids)

    def __len__(self) -> int:
        return len(self.ids)

    def add(self, values: Optional[Iterable[object]]) -> SelectionSet:
        extra = [v for v in _as_id_tuple(values) if v not in self.ids]
        if not extra:
            return self
        return SelectionSet(self.ids + tuple(extra))

    def remove(self, values: Optional[Iterable[object]]) -> SelectionSet:
        drop = set(_as_id_tuple(values))
        if not drop.intersection(self.ids):
            return self
        return SelectionSet(tuple(i for i in self.ids if i not in drop))

    def select_all(self, visible: Iterable[object]) -> SelectionSet:
        return self.add(visible)

    def deselect_all(self, visible: Iterable[object]) -> SelectionSet:
        return self.remove(visible)

    def clear(self) -> SelectionSet:
        if not self.ids:
            return self
        return SelectionSet()

    def as_list(self) -> List[str]:
        return list(self.ids)
