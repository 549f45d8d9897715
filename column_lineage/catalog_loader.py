"""
Schema configuration loading.

Accepted shapes (keys are case-insensitive):
    { catalog: { db: { table: { col: type } } } }
    { db: { table: [col1, col2] } }
    { "db.table": [col1, col2] }
    { table: { "columns": {col: type} | [cols], "partition_keys": [p1] } }
Partition keys missing from the column list are appended, Hive style.
"""

from __future__ import annotations

import csv
import json
import logging
from typing import Any, Dict, List, Optional

from .core.schema import SchemaRegistry, Table

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "y", "partition"}


def _is_table_entry(node: Any) -> bool:
    if isinstance(node, list):
        return True
    if isinstance(node, dict):
        if "columns" in node:
            return True
        return bool(node) and all(not isinstance(v, (dict, list)) for v in node.values())
    return False


def _flatten_schema(raw: Dict) -> Dict[str, Any]:
    """Flatten nested schema dicts into a dotted-name -> table entry mapping."""
    flat: Dict[str, Any] = {}

    def walk(prefix: str, node):
        if _is_table_entry(node):
            flat[prefix.lower()] = node
        elif isinstance(node, dict):
            for k, v in node.items():
                key = f"{prefix}.{k}" if prefix else k
                walk(key, v)

    for k, v in raw.items():
        walk(k, v)
    return {k: v for k, v in flat.items() if k}


def _table_from_entry(name: str, entry: Any, catalog: Optional[str], database: Optional[str]) -> Table:
    partition_keys: List[str] = []
    if isinstance(entry, dict) and "columns" in entry:
        partition_keys = [str(p).lower() for p in entry.get("partition_keys") or []]
        entry = entry["columns"]
    if isinstance(entry, dict):
        columns = [(str(k).lower(), str(v or "")) for k, v in entry.items()]
    else:
        columns = [(str(c).lower(), "") for c in entry]
    known = {c[0] for c in columns}
    for key in partition_keys:
        if key not in known:
            columns.append((key, ""))
    return Table.create(name, columns, partition_keys, catalog=catalog, database=database)


def registry_from_dict(raw: Dict, catalog: Optional[str] = None, database: Optional[str] = None,
                       base: Optional[SchemaRegistry] = None) -> SchemaRegistry:
    """Build a registry from a schema dict; entries override same-named tables in ``base``."""
    registry = base if base is not None else SchemaRegistry()
    for name, entry in _flatten_schema(raw or {}).items():
        table = _table_from_entry(name, entry, catalog, database)
        registry = registry.with_table(table)
        logger.debug(f"Loaded table {table.identifier} with {len(table.columns)} columns")
    return registry


def load_schema_file(path: str, catalog: Optional[str] = None, database: Optional[str] = None,
                     base: Optional[SchemaRegistry] = None) -> SchemaRegistry:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"Schema file {path} must contain a JSON object")
    return registry_from_dict(raw, catalog, database, base)


def load_schema_csv(path: str, catalog: Optional[str] = None, database: Optional[str] = None) -> SchemaRegistry:
    """Load ``database,table,column,data_type[,partition]`` rows; the first row is a header."""
    raw: Dict[str, Dict[str, Any]] = {}
    with open(path, "r", encoding="utf-8") as f:
        reader = csv.reader(f)
        next(reader, None)
        for row in reader:
            if not row or all(not c.strip() for c in row):
                continue
            if len(row) < 5:
                row = row + ["" for _ in range(5 - len(row))]
            db, tbl, col, dtype, partition = [c.strip() for c in row[:5]]
            if not tbl or not col:
                continue
            key = f"{db}.{tbl}".lower() if db else tbl.lower()
            entry = raw.setdefault(key, {"columns": {}, "partition_keys": []})
            entry["columns"][col.lower()] = dtype.lower() if dtype else "unknown"
            if partition.lower() in _TRUE:
                entry["partition_keys"].append(col.lower())
    registry = registry_from_dict(raw, catalog, database)
    logger.info(f"Loaded schema from CSV {path} with {len(registry)} tables")
    return registry
