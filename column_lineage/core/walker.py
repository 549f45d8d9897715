from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from ..errors import CyclicPlan
from .origin import ColumnLineage
from .plan import LogicalPlan
from .propagator import OperatorPropagator


class PlanWalker:
    """Single bottom-up pass over a plan, memoizing each operator's output lineage.

    The memo is keyed by node id and lives only as long as the walker, so a
    shared sub-plan is resolved once per analysis call. ``_visiting`` holds
    the nodes on the current recursion path; meeting one of them again is a
    true cycle, while meeting a memoized node is ordinary diamond reuse.
    """

    def __init__(self, plan: LogicalPlan, propagator: OperatorPropagator, logger: Optional[logging.Logger] = None):
        self.plan = plan
        self.propagator = propagator
        self.logger = logger or logging.getLogger(__name__)
        self._memo: Dict[int, List[ColumnLineage]] = {}
        self._visiting: Set[int] = set()

    def walk(self, node_id: Optional[int] = None) -> List[ColumnLineage]:
        return self._lineage_of(self.plan.root if node_id is None else node_id)

    @property
    def resolved_nodes(self) -> int:
        return len(self._memo)

    def _lineage_of(self, node_id: int) -> List[ColumnLineage]:
        if node_id in self._memo:
            return self._memo[node_id]
        if node_id in self._visiting:
            raise CyclicPlan(node_id)
        op = self.plan.node(node_id)
        self._visiting.add(node_id)
        inputs = [self._lineage_of(child) for child in op.inputs]
        result = self.propagator.propagate(node_id, op, inputs)
        self._visiting.discard(node_id)
        self._memo[node_id] = result
        self.logger.debug(f"Resolved node {node_id} ({type(op).__name__}) with {len(result)} columns")
        return result
