from __future__ import annotations

from typing import List, Optional, Tuple

from sqlglot import expressions as exp

from ..core.schema import normalize_identifier


def clause(node: exp.Expression, key: str):
    """Fetch a clause argument; newer sqlglot releases suffix reserved keys (``from_``, ``with_``)."""
    value = node.args.get(key)
    if not isinstance(value, exp.Expression):
        value = node.args.get(f"{key}_")
    return value


def table_parts(node: exp.Table) -> Tuple[Optional[str], Optional[str], str]:
    """Return (catalog, database, name) of a table reference, normalized."""
    return (
        normalize_identifier(node.catalog) or None,
        normalize_identifier(node.db) or None,
        normalize_identifier(node.name),
    )


def alias_to_str(alias_expr) -> Optional[str]:
    if not alias_expr:
        return None
    if isinstance(alias_expr, str):
        return alias_expr
    if isinstance(alias_expr, exp.TableAlias):
        ident = alias_expr.this
        if isinstance(ident, exp.Identifier):
            return ident.name
        return str(ident) if ident else None
    if isinstance(alias_expr, exp.Identifier):
        return alias_expr.name
    return getattr(alias_expr, "name", None) or None


def alias_columns(alias_expr) -> List[str]:
    if isinstance(alias_expr, exp.TableAlias):
        return [normalize_identifier(c.name) for c in alias_expr.columns]
    return []


def select_parts(query: exp.Expression) -> List[exp.Expression]:
    """Flatten a chain of same-kind set operations into its branches, left to right."""
    parts: List[exp.Expression] = []
    kind = type(query)
    distinct = query.args.get("distinct")
    for side in (query.left, query.right):
        if type(side) is kind and side.args.get("distinct") == distinct and not _has_modifiers(side):
            parts.extend(select_parts(side))
        else:
            parts.append(side)
    return parts


def _has_modifiers(query: exp.Expression) -> bool:
    return any(query.args.get(k) for k in ("order", "limit")) or clause(query, "with") is not None


def is_set_operation(node: exp.Expression) -> bool:
    return isinstance(node, (exp.Union, exp.Intersect, exp.Except))


def function_name(node: exp.Expression) -> str:
    if isinstance(node, exp.Anonymous):
        return str(node.name).upper()
    if isinstance(node, exp.Func):
        return node.sql_name()
    return node.key.upper()
