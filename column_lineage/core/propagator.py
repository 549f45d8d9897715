"""
Per-operator lineage rules.

Each rule receives the already-computed lineage of the operator's inputs
(in ``Operator.inputs`` order) and returns one ColumnLineage per output
column, in the operator's declared output order.
"""

from __future__ import annotations

import logging
from collections import abc
from typing import Callable, Dict, List, Optional, Set

from ..errors import CyclicPlan, MalformedPlan, SchemaMismatch, UnknownTable
from .origin import ColumnLineage, ColumnOrigin, Contribution
from .plan import (
    Aggregate,
    Filter,
    Join,
    Limit,
    Operator,
    Project,
    Scan,
    Sink,
    Sort,
    TableFunctionScan,
    Union,
    Values,
)
from .resolver import ExpressionResolver
from .schema import SchemaRegistry, Table

RowLineage = List[ColumnLineage]


class _TableColumns(abc.Sequence):
    """Lazily resolved lineage of every column of a table, computed columns included."""

    def __init__(self, table: Table, resolver: ExpressionResolver, node_id: int):
        self.table = table
        self.resolver = resolver
        self.node_id = node_id
        self._resolved: Dict[int, ColumnLineage] = {}
        self._visiting: Set[int] = set()

    def __len__(self) -> int:
        return len(self.table.columns)

    def __getitem__(self, pos):
        if pos in self._resolved:
            return self._resolved[pos]
        col = self.table.columns[pos]
        if not col.is_computed:
            value: ColumnLineage = (Contribution(ColumnOrigin(self.table.identifier, col.name)),)
        else:
            if pos in self._visiting:
                raise CyclicPlan(self.node_id)
            self._visiting.add(pos)
            value = self.resolver.resolve(col.expression, self, self.node_id)
            self._visiting.discard(pos)
        self._resolved[pos] = value
        return value


class OperatorPropagator:
    def __init__(self, registry: SchemaRegistry, resolver: Optional[ExpressionResolver] = None,
                 logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self.resolver = resolver or ExpressionResolver(self.logger)
        self._rules: Dict[type, Callable[[int, Operator, List[RowLineage]], RowLineage]] = {
            Scan: self._scan,
            Values: self._values,
            Project: self._project,
            Filter: self._filter,
            Sort: self._pass_through,
            Limit: self._pass_through,
            Join: self._join,
            Aggregate: self._aggregate,
            Union: self._union,
            TableFunctionScan: self._table_function,
            Sink: self._sink,
        }

    def propagate(self, node_id: int, op: Operator, inputs: List[RowLineage]) -> RowLineage:
        rule = self._rules.get(type(op))
        if rule is None:
            raise TypeError(f"No lineage rule for operator {type(op).__name__}")
        return rule(node_id, op, inputs)

    # ------- leaves ---------
    def _scan(self, node_id: int, op: Scan, inputs: List[RowLineage]) -> RowLineage:
        table = self.registry.lookup(op.table)
        if table is None:
            raise UnknownTable(op.table)
        columns = _TableColumns(table, self.resolver, node_id)
        if op.fields is None:
            return [columns[i] for i in range(len(columns))]
        out: RowLineage = []
        for name in op.fields:
            idx = table.index_of(name)
            if idx is None:
                raise SchemaMismatch(node_id, f"Table {table.identifier} has no column '{name}'")
            out.append(columns[idx])
        return out

    def _values(self, node_id: int, op: Values, inputs: List[RowLineage]) -> RowLineage:
        return [() for _ in op.fields]

    # ------- single input ---------
    def _project(self, node_id: int, op: Project, inputs: List[RowLineage]) -> RowLineage:
        (row,) = inputs
        return [self.resolver.resolve(e, row, node_id) for e in op.expressions]

    def _filter(self, node_id: int, op: Filter, inputs: List[RowLineage]) -> RowLineage:
        (row,) = inputs
        self.resolver.check(op.condition, len(row), node_id)
        return list(row)

    def _pass_through(self, node_id: int, op: Operator, inputs: List[RowLineage]) -> RowLineage:
        (row,) = inputs
        return list(row)

    def _aggregate(self, node_id: int, op: Aggregate, inputs: List[RowLineage]) -> RowLineage:
        (row,) = inputs
        out = [self.resolver.resolve(e, row, node_id) for e in op.group_by]
        out.extend(self.resolver.resolve(call, row, node_id) for call in op.aggregates)
        return out

    def _table_function(self, node_id: int, op: TableFunctionScan, inputs: List[RowLineage]) -> RowLineage:
        (row,) = inputs
        produced = self.resolver.resolve(op.call, row, node_id)
        # every produced field fans out from the same function inputs
        return list(row) + [produced for _ in op.fields]

    # ------- multiple inputs ---------
    def _join(self, node_id: int, op: Join, inputs: List[RowLineage]) -> RowLineage:
        left, right = inputs
        self.resolver.check(op.condition, len(left) + len(right), node_id)
        return list(left) + list(right)

    def _union(self, node_id: int, op: Union, inputs: List[RowLineage]) -> RowLineage:
        if not inputs:
            raise MalformedPlan(f"{op.kind} without branches", node_id)
        arity = len(inputs[0])
        for idx, branch in enumerate(inputs[1:], start=1):
            if len(branch) != arity:
                raise SchemaMismatch(node_id, f"{op.kind} branch {idx} has {len(branch)} columns, expected {arity}")
        out: RowLineage = []
        for col in range(arity):
            merged: List[Contribution] = []
            for branch in inputs:
                for c in branch[col]:
                    if c not in merged:
                        merged.append(c)
            out.append(tuple(merged))
        return out

    def _sink(self, node_id: int, op: Sink, inputs: List[RowLineage]) -> RowLineage:
        raise MalformedPlan("Sink cannot feed another operator", node_id)
