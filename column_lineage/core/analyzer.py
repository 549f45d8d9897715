from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import MalformedPlan, UnknownTable
from ..models import LineageEdge
from .assembler import assemble
from .plan import LogicalPlan, Sink
from .propagator import OperatorPropagator
from .resolver import ExpressionResolver
from .schema import SchemaRegistry
from .sink import SinkBinder
from .walker import PlanWalker


@dataclass
class LineageAnalyzer:
    """Compute column lineage edges for a plan rooted at a Sink.

    Algorithm:
    1. Pre-check: every Scan/Sink table must be registered (UnknownTable otherwise)
    2. Walk the sink's input bottom-up, one lineage entry per output column
    3. Bind the walked row (and any explicit partition values) to the target columns
    4. Deduplicate exact duplicate edges, keeping first-seen order

    The registry is only read; every call builds its own walker and memo.
    """

    registry: SchemaRegistry
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def analyze(self, plan: LogicalPlan) -> List[LineageEdge]:
        self._check_tables(plan)
        root = plan.root_node
        if not isinstance(root, Sink):
            raise MalformedPlan(f"Plan root must be a Sink, found {type(root).__name__}", plan.root)
        resolver = ExpressionResolver(self.logger)
        walker = PlanWalker(plan, OperatorPropagator(self.registry, resolver, self.logger), self.logger)
        edges = SinkBinder(walker, self.registry, resolver, self.logger).bind(plan.root)
        result = assemble(edges)
        self.logger.debug(
            f"Lineage for {root.table}: {len(result)} edges from {walker.resolved_nodes} resolved operators"
        )
        return result

    def _check_tables(self, plan: LogicalPlan) -> None:
        for identifier in plan.scanned_tables():
            if not self.registry.has_table(identifier):
                raise UnknownTable(identifier)
