from __future__ import annotations

from typing import Any, Dict, List

from ..core.plan import LogicalPlan
from ..core.schema import SchemaRegistry
from ..errors import UnknownPlugin


class EngineAdapter:
    """Abstract base for a SQL front end: parses statements and supplies logical plans.

    One adapter stands for one SQL engine flavour/version; the client picks
    it by plugin code, so several incompatible engines can be served side by
    side without sharing any parsing state.
    """

    plugin_code: str = ""

    def parse(self, sql: str) -> List[Any]:
        raise NotImplementedError

    def is_ddl(self, statement: Any) -> bool:
        raise NotImplementedError

    def is_insert(self, statement: Any) -> bool:
        raise NotImplementedError

    def apply_ddl(self, statement: Any, registry: SchemaRegistry, catalog: str, database: str) -> SchemaRegistry:
        """Return a new registry with the statement's catalog change applied."""
        raise NotImplementedError

    def build_plan(self, statement: Any, registry: SchemaRegistry, catalog: str, database: str) -> LogicalPlan:
        raise NotImplementedError


class AdapterRegistry:
    """Engine adapters indexed by plugin code."""

    def __init__(self):
        self._adapters: Dict[str, EngineAdapter] = {}

    def register(self, adapter: EngineAdapter) -> None:
        self._adapters[adapter.plugin_code] = adapter

    def get(self, plugin_code: str) -> EngineAdapter:
        adapter = self._adapters.get(plugin_code)
        if adapter is None:
            raise UnknownPlugin(plugin_code)
        return adapter

    def codes(self) -> List[str]:
        return list(self._adapters)
