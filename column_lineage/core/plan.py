"""Logical plan: scalar expressions and relational operators.

Operators live in an arena (``LogicalPlan.nodes``) and refer to their inputs
by node id, so a sub-plan shared by several parents (a CTE read twice, a
self join) is one node reached along several paths.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from ..errors import MalformedPlan
from .schema import TableIdentifier


# ---------------- expressions ----------------

@dataclass(frozen=True)
class ColumnRef:
    index: int


@dataclass(frozen=True)
class Literal:
    text: str = ""


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Expression", ...]
    text: str


Expression = typing.Union[ColumnRef, Literal, Call]


def iter_column_refs(expr: Expression) -> Iterator[ColumnRef]:
    if isinstance(expr, ColumnRef):
        yield expr
    elif isinstance(expr, Call):
        for arg in expr.args:
            yield from iter_column_refs(arg)


# ---------------- operators ----------------

@dataclass(frozen=True)
class Scan:
    table: TableIdentifier
    fields: Optional[Tuple[str, ...]] = None

    @property
    def inputs(self) -> Tuple[int, ...]:
        return ()


@dataclass(frozen=True)
class Values:
    fields: Tuple[str, ...]

    @property
    def inputs(self) -> Tuple[int, ...]:
        return ()


@dataclass(frozen=True)
class Project:
    input: int
    expressions: Tuple[Expression, ...]
    fields: Tuple[str, ...] = ()

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.input,)


@dataclass(frozen=True)
class Filter:
    input: int
    condition: Optional[Expression] = None

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.input,)


@dataclass(frozen=True)
class Sort:
    input: int

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.input,)


@dataclass(frozen=True)
class Limit:
    input: int
    fetch: Optional[int] = None

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.input,)


@dataclass(frozen=True)
class Join:
    left: int
    right: int
    condition: Optional[Expression] = None
    kind: str = "INNER"

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class Aggregate:
    input: int
    group_by: Tuple[Expression, ...]
    aggregates: Tuple[Call, ...]
    fields: Tuple[str, ...] = ()

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.input,)


@dataclass(frozen=True)
class Union:
    branches: Tuple[int, ...]
    kind: str = "UNION"
    distinct: bool = False

    @property
    def inputs(self) -> Tuple[int, ...]:
        return self.branches


@dataclass(frozen=True)
class TableFunctionScan:
    """Correlated table function: input columns, then one column per produced field."""
    input: int
    call: Call
    fields: Tuple[str, ...]

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.input,)


@dataclass(frozen=True)
class Sink:
    table: TableIdentifier
    input: int
    columns: Optional[Tuple[str, ...]] = None
    partition_values: Tuple[Expression, ...] = ()

    @property
    def inputs(self) -> Tuple[int, ...]:
        return (self.input,)


Operator = typing.Union[Scan, Values, Project, Filter, Sort, Limit, Join, Aggregate, Union, TableFunctionScan, Sink]


@dataclass(frozen=True)
class LogicalPlan:
    nodes: Tuple[Operator, ...]
    root: int

    def node(self, node_id: int) -> Operator:
        if not 0 <= node_id < len(self.nodes):
            raise MalformedPlan(f"Reference to unknown operator {node_id}")
        return self.nodes[node_id]

    @property
    def root_node(self) -> Operator:
        return self.node(self.root)

    def scanned_tables(self) -> List[TableIdentifier]:
        return [op.table for op in self.nodes if isinstance(op, (Scan, Sink))]


class PlanBuilder:
    """Append-only arena builder; ``add`` returns the new node id."""

    def __init__(self):
        self._nodes: List[Operator] = []

    def add(self, op: Operator) -> int:
        self._nodes.append(op)
        return len(self._nodes) - 1

    def scan(self, table: TableIdentifier, fields: Optional[Sequence[str]] = None) -> int:
        return self.add(Scan(table, tuple(fields) if fields is not None else None))

    def project(self, input: int, expressions: Sequence[Expression], fields: Sequence[str] = ()) -> int:
        return self.add(Project(input, tuple(expressions), tuple(fields)))

    def sink(
        self,
        table: TableIdentifier,
        input: int,
        columns: Optional[Sequence[str]] = None,
        partition_values: Sequence[Expression] = (),
    ) -> int:
        return self.add(Sink(table, input, tuple(columns) if columns is not None else None, tuple(partition_values)))

    def build(self, root: Optional[int] = None) -> LogicalPlan:
        if not self._nodes:
            raise MalformedPlan("Empty plan")
        return LogicalPlan(tuple(self._nodes), len(self._nodes) - 1 if root is None else root)
