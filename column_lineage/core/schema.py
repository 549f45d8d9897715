from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

if TYPE_CHECKING:
    from .plan import Expression

DEFAULT_CATALOG = "default_catalog"
DEFAULT_DATABASE = "default_database"


def normalize_identifier(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    return str(name).strip().strip('`').strip('"').lower()


@dataclass(frozen=True)
class TableIdentifier:
    catalog: str
    database: str
    name: str

    @classmethod
    def of(cls, catalog: Optional[str], database: Optional[str], name: str) -> "TableIdentifier":
        return cls(
            normalize_identifier(catalog) or DEFAULT_CATALOG,
            normalize_identifier(database) or DEFAULT_DATABASE,
            normalize_identifier(name),
        )

    @classmethod
    def parse(cls, dotted: str, catalog: Optional[str] = None, database: Optional[str] = None) -> "TableIdentifier":
        """Build an identifier from ``name``, ``db.name`` or ``catalog.db.name``."""
        parts = [p for p in dotted.split(".") if p]
        if len(parts) >= 3:
            return cls.of(parts[-3], parts[-2], parts[-1])
        if len(parts) == 2:
            return cls.of(catalog, parts[0], parts[1])
        return cls.of(catalog, database, parts[0])

    def __str__(self) -> str:
        return f"{self.catalog}.{self.database}.{self.name}"


@dataclass(frozen=True)
class Column:
    """A table column. ``expression`` is set for computed columns and refers
    to the owning table's column ordinals."""
    name: str
    position: int
    data_type: str = ""
    expression: Optional["Expression"] = None

    @property
    def is_computed(self) -> bool:
        return self.expression is not None


ColumnSpec = Union[str, Tuple[str, str], Column]


@dataclass(frozen=True)
class Table:
    identifier: TableIdentifier
    columns: Tuple[Column, ...]
    partition_keys: Tuple[str, ...] = ()

    def __post_init__(self):
        names = self.column_names()
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate column names in table {self.identifier}")
        for key in self.partition_keys:
            if key not in names:
                raise ValueError(f"Partition key '{key}' is not a column of {self.identifier}")

    @classmethod
    def create(
        cls,
        name: str,
        columns: Sequence[ColumnSpec],
        partition_keys: Sequence[str] = (),
        catalog: Optional[str] = None,
        database: Optional[str] = None,
    ) -> "Table":
        """Convenience constructor accepting column names, (name, type) pairs or Columns."""
        built: List[Column] = []
        for pos, spec in enumerate(columns):
            if isinstance(spec, Column):
                built.append(Column(normalize_identifier(spec.name), pos, spec.data_type, spec.expression))
            elif isinstance(spec, tuple):
                built.append(Column(normalize_identifier(spec[0]), pos, spec[1]))
            else:
                built.append(Column(normalize_identifier(spec), pos))
        return cls(
            identifier=TableIdentifier.parse(name, catalog, database),
            columns=tuple(built),
            partition_keys=tuple(normalize_identifier(k) for k in partition_keys),
        )

    @property
    def name(self) -> str:
        return self.identifier.name

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def physical_column_names(self) -> List[str]:
        """Columns an INSERT writes; computed columns derive their own value."""
        return [c.name for c in self.columns if not c.is_computed]

    def index_of(self, column: str) -> Optional[int]:
        n = normalize_identifier(column)
        for c in self.columns:
            if c.name == n:
                return c.position
        return None

    def column(self, name: str) -> Optional[Column]:
        idx = self.index_of(name)
        return None if idx is None else self.columns[idx]

    def is_partition(self, column: str) -> bool:
        return normalize_identifier(column) in self.partition_keys


@dataclass(frozen=True)
class SchemaRegistry:
    """Immutable snapshot of registered tables keyed by identifier.

    Mutating operations return a new registry so an in-flight analysis
    keeps reading the snapshot it started with.
    """

    _tables: "MappingProxyType[TableIdentifier, Table]" = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def of(cls, tables: Iterable[Table] = ()) -> "SchemaRegistry":
        return cls(MappingProxyType({t.identifier: t for t in tables}))

    def get_table(self, catalog: Optional[str], database: Optional[str], name: str) -> Optional[Table]:
        return self._tables.get(TableIdentifier.of(catalog, database, name))

    def lookup(self, identifier: TableIdentifier) -> Optional[Table]:
        return self._tables.get(identifier)

    def has_table(self, identifier: TableIdentifier) -> bool:
        return identifier in self._tables

    def with_table(self, table: Table) -> "SchemaRegistry":
        tables: Dict[TableIdentifier, Table] = dict(self._tables)
        tables[table.identifier] = table
        return SchemaRegistry(MappingProxyType(tables))

    def without_table(self, identifier: TableIdentifier) -> "SchemaRegistry":
        tables = {k: v for k, v in self._tables.items() if k != identifier}
        return SchemaRegistry(MappingProxyType(tables))

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)
