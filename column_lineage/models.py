from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .core.schema import TableIdentifier


@dataclass(frozen=True)
class LineageEdge:
    source_table: TableIdentifier
    source_column: str
    target_table: TableIdentifier
    target_column: str
    transform: Optional[str] = None

    def as_key(self) -> tuple:
        return (self.source_table, self.source_column, self.target_table, self.target_column, self.transform)

    def as_tuple(self) -> Tuple[str, ...]:
        """Short form ``(source_table, source_column, target_table, target_column[, transform])``."""
        row = (self.source_table.name, self.source_column, self.target_table.name, self.target_column)
        if self.transform is not None:
            row = row + (self.transform,)
        return row

    def as_csv_row(self) -> List[str]:
        return [
            str(self.source_table),
            self.source_column,
            str(self.target_table),
            self.target_column,
            self.transform or "",
        ]

    @classmethod
    def build_result(cls, catalog: str, database: str, rows: Iterable[Sequence[str]]) -> List["LineageEdge"]:
        """Build edges from ``[source_table, source_column, target_table, target_column(, transform)]`` rows
        whose tables all live in ``catalog.database``."""
        out: List[LineageEdge] = []
        for row in rows:
            out.append(
                cls(
                    source_table=TableIdentifier.of(catalog, database, row[0]),
                    source_column=row[1],
                    target_table=TableIdentifier.of(catalog, database, row[2]),
                    target_column=row[3],
                    transform=row[4] if len(row) > 4 else None,
                )
            )
        return out

    def __str__(self) -> str:
        text = f"{self.source_table}.{self.source_column} -> {self.target_table}.{self.target_column}"
        if self.transform is not None:
            text += f" [{self.transform}]"
        return text


CSV_HEADER = [
    "source_table",
    "source_column",
    "target_table",
    "target_column",
    "transform",
]
