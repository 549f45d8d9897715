"""
Expression resolution.

Maps a scalar expression evaluated over an operator's input row to the
source columns it reads and the transformation text it applies.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..errors import UnresolvedColumn
from .origin import ColumnLineage, Contribution, origins_of
from .plan import Call, ColumnRef, Expression, Literal, iter_column_refs


class ExpressionResolver:
    """Resolves Expression trees against the lineage of an input row.

    - ColumnRef passes the referenced input column through untouched, so a
      transform attached further down the plan survives a plain copy.
    - Literal contributes nothing.
    - Call collects every argument's origins and tags them all with its own
      rendered text; nested calls collapse into the outermost text.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def resolve(
        self,
        expr: Expression,
        input_lineage: Sequence[ColumnLineage],
        node_id: Optional[int] = None,
    ) -> ColumnLineage:
        if isinstance(expr, ColumnRef):
            if not 0 <= expr.index < len(input_lineage):
                raise UnresolvedColumn(node_id, expr.index, len(input_lineage))
            return input_lineage[expr.index]
        if isinstance(expr, Literal):
            return ()
        if isinstance(expr, Call):
            gathered = []
            for arg in expr.args:
                gathered.extend(self.resolve(arg, input_lineage, node_id))
            origins = origins_of(gathered)
            if not origins:
                self.logger.debug(f"{expr.text} reads no source column (node {node_id})")
            return tuple(Contribution(o, expr.text) for o in origins)
        raise TypeError(f"Unsupported expression type: {type(expr).__name__}")

    def check(self, expr: Optional[Expression], arity: int, node_id: Optional[int] = None) -> None:
        """Validate ordinals of an expression that produces no output column (join/filter conditions)."""
        if expr is None:
            return
        for ref in iter_column_refs(expr):
            if not 0 <= ref.index < arity:
                raise UnresolvedColumn(node_id, ref.index, arity)
