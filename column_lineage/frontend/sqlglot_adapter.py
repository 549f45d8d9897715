from __future__ import annotations

import logging
from typing import List, Optional

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError

from ..core.plan import LogicalPlan
from ..core.schema import SchemaRegistry
from ..errors import PlanBuildError
from . import ddl
from .base import EngineAdapter
from .planner import QueryPlanner


class SqlglotAdapter(EngineAdapter):
    """Engine adapter backed by a sqlglot dialect (``hive``, ``spark``, ``trino``, ...)."""

    def __init__(self, dialect: str = "spark", plugin_code: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        self.dialect = dialect.lower()
        self.plugin_code = plugin_code or self.dialect
        self.logger = logger or logging.getLogger(__name__)

    def parse(self, sql: str) -> List[exp.Expression]:
        try:
            statements = sqlglot.parse(sql, read=self.dialect)
        except SqlglotError as e:
            raise PlanBuildError(f"Cannot parse SQL with dialect {self.dialect}: {e}") from e
        return [s for s in statements if s is not None]

    def is_ddl(self, statement: exp.Expression) -> bool:
        return ddl.is_ddl(statement)

    def is_insert(self, statement: exp.Expression) -> bool:
        return isinstance(statement, exp.Insert)

    def apply_ddl(self, statement: exp.Expression, registry: SchemaRegistry, catalog: str,
                  database: str) -> SchemaRegistry:
        return ddl.apply_ddl(statement, registry, catalog, database, self.dialect)

    def build_plan(self, statement: exp.Expression, registry: SchemaRegistry, catalog: str,
                   database: str) -> LogicalPlan:
        if not isinstance(statement, exp.Insert):
            raise PlanBuildError(
                f"Only INSERT statements carry column lineage, got {statement.key.upper()}"
            )
        planner = QueryPlanner(registry, catalog, database, self.dialect, self.logger)
        plan = planner.plan_insert(statement)
        self.logger.debug(f"Built plan with {len(plan.nodes)} operators for {self.plugin_code}")
        return plan

    def __repr__(self) -> str:
        return f"SqlglotAdapter(dialect={self.dialect!r}, plugin_code={self.plugin_code!r})"
