"""Typed failures raised by the lineage engine and its collaborators.

Every analysis is all-or-nothing: these exceptions propagate to the caller
and no partial lineage list is ever returned alongside them.
"""

from __future__ import annotations

from typing import Optional


class LineageError(Exception):
    """Base class for every lineage failure."""


class UnknownTable(LineageError):
    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"Table '{identifier}' is not registered")


class UnresolvedColumn(LineageError):
    """A ColumnRef ordinal is out of range for its operator's input."""

    def __init__(self, node_id: Optional[int], ordinal: int, arity: int):
        self.node_id = node_id
        self.ordinal = ordinal
        self.arity = arity
        super().__init__(
            f"Column ordinal {ordinal} out of range for input of arity {arity} (node {node_id})"
        )


class SchemaMismatch(LineageError):
    def __init__(self, node_id: Optional[int], message: str):
        self.node_id = node_id
        super().__init__(f"{message} (node {node_id})")


class CyclicPlan(LineageError):
    def __init__(self, node_id: int):
        self.node_id = node_id
        super().__init__(f"Operator {node_id} is its own ancestor")


class MalformedPlan(LineageError):
    def __init__(self, message: str, node_id: Optional[int] = None):
        self.node_id = node_id
        super().__init__(message if node_id is None else f"{message} (node {node_id})")


class PlanBuildError(LineageError):
    """The SQL front end cannot express a statement as a logical plan."""


class UnknownPlugin(LineageError):
    def __init__(self, plugin_code: str):
        self.plugin_code = plugin_code
        super().__init__(f"No engine adapter registered for plugin '{plugin_code}'")
