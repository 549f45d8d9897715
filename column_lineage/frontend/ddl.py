"""
DDL registration.

Applies ``CREATE TABLE`` / ``DROP TABLE`` statements to a schema registry
snapshot and returns the new snapshot; the input registry is never touched.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlglot import expressions as exp

from ..core.schema import Column, SchemaRegistry, Table, TableIdentifier
from ..errors import LineageError, PlanBuildError, UnknownTable
from .planner import QueryPlanner
from .utils import normalize_identifier, table_parts

logger = logging.getLogger(__name__)


def is_ddl(statement: exp.Expression) -> bool:
    return isinstance(statement, (exp.Create, exp.Drop))


def apply_ddl(statement: exp.Expression, registry: SchemaRegistry, catalog: str, database: str,
              dialect: str) -> SchemaRegistry:
    if isinstance(statement, exp.Create):
        return _create_table(statement, registry, catalog, database, dialect)
    if isinstance(statement, exp.Drop):
        return _drop_table(statement, registry, catalog, database)
    raise PlanBuildError(f"Not a DDL statement: {statement.sql(dialect=dialect)}")


def _identifier(node: exp.Table, catalog: str, database: str) -> TableIdentifier:
    cat, db, name = table_parts(node)
    return TableIdentifier.of(cat or catalog, db or database, name)


def _create_table(create: exp.Create, registry: SchemaRegistry, catalog: str, database: str,
                  dialect: str) -> SchemaRegistry:
    kind = str(create.args.get("kind") or "").upper()
    if kind != "TABLE":
        raise PlanBuildError(f"Unsupported CREATE {kind}")
    schema = create.this
    if not isinstance(schema, exp.Schema):
        raise PlanBuildError(f"CREATE TABLE without a column list: {create.sql(dialect=dialect)}")
    identifier = _identifier(schema.this, catalog, database)

    if registry.has_table(identifier):
        if create.args.get("exists"):
            logger.debug(f"Table {identifier} already exists, keeping current definition")
            return registry
        raise LineageError(f"Table '{identifier}' already exists")

    defs: List[Tuple[str, str, Optional[exp.Expression]]] = []
    for col in schema.expressions:
        if isinstance(col, exp.ColumnDef):
            defs.append(_column_def(col, dialect))

    partition_keys = []
    for name, type_text, in_schema in _partition_columns(create, dialect):
        partition_keys.append(name)
        if in_schema and name not in [d[0] for d in defs]:
            defs.append((name, type_text, None))

    names = [d[0] for d in defs]
    planner = QueryPlanner(registry, catalog, database, dialect)
    columns = [
        Column(
            name=name,
            position=pos,
            data_type=type_text,
            expression=planner.convert_expression(computed, names) if computed is not None else None,
        )
        for pos, (name, type_text, computed) in enumerate(defs)
    ]
    table = Table(identifier, tuple(columns), tuple(partition_keys))
    logger.info(f"Registered table {identifier} ({len(columns)} columns, partitioned by {list(partition_keys)})")
    return registry.with_table(table)


def _column_def(col: exp.ColumnDef, dialect: str) -> Tuple[str, str, Optional[exp.Expression]]:
    kind = col.args.get("kind")
    computed = None
    for constraint in col.args.get("constraints") or []:
        if isinstance(constraint.args.get("kind"), exp.ComputedColumnConstraint):
            computed = constraint.args["kind"].this
    return normalize_identifier(col.name), kind.sql(dialect=dialect) if kind else "", computed


def _partition_columns(create: exp.Create, dialect: str) -> List[Tuple[str, str, bool]]:
    """(name, type, declared-with-type) for each PARTITIONED BY entry, in declaration order."""
    out: List[Tuple[str, str, bool]] = []
    properties = create.args.get("properties")
    if properties is None:
        return out
    for prop in properties.expressions:
        if not isinstance(prop, exp.PartitionedByProperty):
            continue
        spec = prop.this
        items = spec.expressions if isinstance(spec, (exp.Schema, exp.Tuple)) else [spec]
        for item in items:
            if isinstance(item, exp.ColumnDef):
                kind = item.args.get("kind")
                out.append((normalize_identifier(item.name), kind.sql(dialect=dialect) if kind else "", True))
            else:
                out.append((normalize_identifier(item.name), "", False))
    return out


def _drop_table(drop: exp.Drop, registry: SchemaRegistry, catalog: str, database: str) -> SchemaRegistry:
    kind = str(drop.args.get("kind") or "").upper()
    if kind != "TABLE":
        raise PlanBuildError(f"Unsupported DROP {kind}")
    # newer sqlglot releases keep the targets under "tables" and leave "this" empty
    if isinstance(drop.this, exp.Table):
        targets = [drop.this]
    else:
        targets = [t for t in drop.args.get("tables") or [] if isinstance(t, exp.Table)]
    if not targets:
        raise PlanBuildError(f"DROP TABLE without a table name: {drop.sql()}")
    for target in targets:
        identifier = _identifier(target, catalog, database)
        if not registry.has_table(identifier):
            if drop.args.get("exists"):
                continue
            raise UnknownTable(identifier)
        registry = registry.without_table(identifier)
        logger.info(f"Dropped table {identifier}")
    return registry
