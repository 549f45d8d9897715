from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .schema import TableIdentifier


@dataclass(frozen=True)
class ColumnOrigin:
    """Represents a physical source table & column for lineage."""
    table: TableIdentifier
    column: str

    def as_key(self) -> tuple:
        return (self.table, self.column)


@dataclass(frozen=True)
class Contribution:
    """One origin feeding an output column, with the expression that derived it (if any)."""
    origin: ColumnOrigin
    transform: Optional[str] = None


# Ordered contributions of a single output column.
ColumnLineage = Tuple[Contribution, ...]


def origins_of(lineage: Iterable[Contribution]) -> List[ColumnOrigin]:
    """Distinct origins in first-seen order."""
    seen = set()
    out: List[ColumnOrigin] = []
    for c in lineage:
        if c.origin not in seen:
            seen.add(c.origin)
            out.append(c.origin)
    return out
