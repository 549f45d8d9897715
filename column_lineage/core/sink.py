from __future__ import annotations

import logging
from typing import List, Optional

from ..errors import MalformedPlan, SchemaMismatch, UnknownTable
from ..models import LineageEdge
from .origin import ColumnLineage
from .plan import Sink
from .resolver import ExpressionResolver
from .schema import SchemaRegistry, normalize_identifier
from .walker import PlanWalker


class SinkBinder:
    """Binds the lineage of a Sink's input to the target table's columns.

    Target columns are the sink's explicit column list, or every physical
    (non-computed) table column in declared order. When the statement carries
    explicit partition values (one per partition key, in key order) the
    partition columns take the lineage of those expressions, resolved against
    the sink input, and the remaining target columns bind by position to the
    leading input columns. Computed columns are never written.
    """

    def __init__(self, walker: PlanWalker, registry: SchemaRegistry,
                 resolver: Optional[ExpressionResolver] = None, logger: Optional[logging.Logger] = None):
        self.walker = walker
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self.resolver = resolver or ExpressionResolver(self.logger)

    def bind(self, sink_id: int) -> List[LineageEdge]:
        sink = self.walker.plan.node(sink_id)
        if not isinstance(sink, Sink):
            raise MalformedPlan(f"Expected a Sink, found {type(sink).__name__}", sink_id)
        table = self.registry.lookup(sink.table)
        if table is None:
            raise UnknownTable(sink.table)

        targets = self._target_columns(sink_id, sink, table)
        row = self.walker.walk(sink.input)

        bindings: List[tuple] = []
        if sink.partition_values:
            keys = list(table.partition_keys)
            if len(sink.partition_values) != len(keys):
                raise SchemaMismatch(
                    sink_id,
                    f"{len(sink.partition_values)} partition values for {len(keys)} partition keys of {table.identifier}",
                )
            targets = targets + [k for k in keys if k not in targets]
            positional = [c for c in targets if not table.is_partition(c)]
            if not len(positional) <= len(row) <= len(positional) + len(keys):
                raise SchemaMismatch(
                    sink_id,
                    f"Query produces {len(row)} columns but {table.identifier} expects {len(positional)} "
                    f"plus up to {len(keys)} partition columns",
                )
            partition_lineage = {
                key: self.resolver.resolve(expr, row, sink_id)
                for key, expr in zip(keys, sink.partition_values)
            }
            pos = 0
            for column in targets:
                if column in partition_lineage:
                    bindings.append((column, partition_lineage[column]))
                else:
                    bindings.append((column, row[pos]))
                    pos += 1
        else:
            if len(row) != len(targets):
                raise SchemaMismatch(
                    sink_id,
                    f"Query produces {len(row)} columns but {table.identifier} expects {len(targets)}",
                )
            bindings = list(zip(targets, row))

        edges: List[LineageEdge] = []
        for column, lineage in bindings:
            edges.extend(self._edges(sink, column, lineage))
        return edges

    def _target_columns(self, sink_id: int, sink: Sink, table) -> List[str]:
        if sink.columns is None:
            return table.physical_column_names()
        out: List[str] = []
        for name in sink.columns:
            n = normalize_identifier(name)
            column = table.column(n)
            if column is None:
                raise SchemaMismatch(sink_id, f"Table {table.identifier} has no column '{name}'")
            if column.is_computed:
                raise SchemaMismatch(sink_id, f"Column '{name}' of {table.identifier} is computed and cannot be written")
            out.append(n)
        return out

    def _edges(self, sink: Sink, column: str, lineage: ColumnLineage) -> List[LineageEdge]:
        if not lineage:
            self.logger.debug(f"{sink.table}.{column} has no source column; no edge emitted")
        return [
            LineageEdge(
                source_table=c.origin.table,
                source_column=c.origin.column,
                target_table=sink.table,
                target_column=column,
                transform=c.transform,
            )
            for c in lineage
        ]
