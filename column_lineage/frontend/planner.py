"""
Logical plan construction from sqlglot syntax trees.

Turns an ``INSERT INTO … SELECT …`` statement into the operator arena the
lineage engine walks. Name resolution happens here: every column reference
becomes an ordinal into its operator's input row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlglot import expressions as exp

from ..core.plan import (
    Aggregate,
    Call,
    ColumnRef,
    Expression,
    Filter,
    Join,
    Limit,
    Literal,
    LogicalPlan,
    PlanBuilder,
    Project,
    Sink,
    Sort,
    TableFunctionScan,
    Union,
    Values,
)
from ..core.schema import SchemaRegistry, Table, TableIdentifier
from ..errors import PlanBuildError, SchemaMismatch, UnknownTable
from .utils import (
    alias_columns,
    alias_to_str,
    clause,
    function_name,
    is_set_operation,
    normalize_identifier,
    select_parts,
    table_parts,
)

_CONSTANTS = (exp.Literal, exp.Null, exp.Boolean, exp.DataType, exp.Identifier, exp.Var, exp.Star, exp.Lambda)


@dataclass(frozen=True)
class _Field:
    qualifier: Optional[str]
    name: str


@dataclass
class _Relation:
    """An operator's output row as seen by name resolution."""
    node: int
    fields: List[_Field] = field(default_factory=list)

    def requalify(self, qualifier: Optional[str]) -> "_Relation":
        return _Relation(self.node, [_Field(qualifier, f.name) for f in self.fields])

    def lookup(self, name: str, qualifier: Optional[str] = None) -> List[int]:
        return [
            i for i, f in enumerate(self.fields)
            if f.name == name and (qualifier is None or f.qualifier == qualifier)
        ]


class QueryPlanner:
    """Builds a LogicalPlan for one statement against a schema snapshot.

    Steps for a SELECT, in evaluation order:
    1. FROM source (table, CTE, subquery, VALUES) then JOINs, each source qualified by alias
    2. LATERAL VIEW table functions appended as correlated TableFunctionScans
    3. WHERE -> Filter
    4. GROUP BY / aggregate calls -> Aggregate, HAVING -> Filter above it
    5. Projection list (stars expanded) -> Project
    6. ORDER BY -> Sort, LIMIT -> Limit
    CTEs are planned once where declared; every reference reuses the same node.
    """

    def __init__(self, registry: SchemaRegistry, catalog: str, database: str, dialect: str,
                 logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.catalog = catalog
        self.database = database
        self.dialect = dialect
        self.logger = logger or logging.getLogger(__name__)
        self.builder = PlanBuilder()
        self._ctes: Dict[str, _Relation] = {}

    # --------------- public API ---------------
    def plan_insert(self, insert: exp.Insert) -> LogicalPlan:
        target = insert.this
        columns: Optional[List[str]] = None
        if isinstance(target, exp.Schema):
            columns = [normalize_identifier(c.name) for c in target.expressions]
            target = target.this
        if not isinstance(target, exp.Table):
            raise PlanBuildError(f"Unsupported INSERT target: {target.sql(dialect=self.dialect)}")
        table = self._lookup(target)

        saved = dict(self._ctes)
        self._register_ctes(insert)
        query = insert.expression
        if isinstance(query, exp.Subquery):
            query = query.this
        rel = self._plan_query(query)
        self._ctes = saved

        partition_values = self._partition_values(insert, table, columns)
        self.builder.add(
            Sink(
                table=table.identifier,
                input=rel.node,
                columns=tuple(columns) if columns else None,
                partition_values=tuple(partition_values),
            )
        )
        return self.builder.build()

    def convert_expression(self, node: exp.Expression, field_names: List[str]) -> Expression:
        """Convert a standalone expression over an unqualified row of ``field_names``."""
        return self._convert(node, _Relation(-1, [_Field(None, n) for n in field_names]))

    # --------------- queries ---------------
    def _plan_query(self, query: exp.Expression) -> _Relation:
        saved = dict(self._ctes)
        self._register_ctes(query)
        if isinstance(query, exp.Select):
            rel = self._plan_select(query)
        elif is_set_operation(query):
            rel = self._plan_set_operation(query)
        elif isinstance(query, exp.Values):
            rel = self._plan_values(query)
        elif isinstance(query, exp.Subquery):
            rel = self._plan_query(query.this)
        else:
            raise PlanBuildError(f"Unsupported query: {query.sql(dialect=self.dialect)}")
        if not isinstance(query, exp.Select):
            rel = self._plan_modifiers(query, rel)
        self._ctes = saved
        return rel

    def _register_ctes(self, node: exp.Expression) -> None:
        with_ = clause(node, "with")
        if not with_:
            return
        for cte in with_.expressions:
            name = normalize_identifier(cte.alias)
            rel = self._plan_query(cte.this)
            names = alias_columns(cte.args.get("alias"))
            if names:
                if len(names) != len(rel.fields):
                    raise PlanBuildError(f"CTE {name} declares {len(names)} columns for {len(rel.fields)}")
                rel = _Relation(rel.node, [_Field(None, n) for n in names])
            self._ctes[name] = rel
            self.logger.debug(f"Registered CTE {name} as node {rel.node}")

    def _plan_select(self, select: exp.Select) -> _Relation:
        from_ = clause(select, "from")
        if isinstance(from_, exp.From):
            rel = self._plan_source(from_.this)
        else:
            rel = _Relation(self.builder.add(Values(())))
        for join in select.args.get("joins") or []:
            rel = self._plan_join(rel, join)
        for lateral in select.args.get("laterals") or []:
            rel = self._plan_lateral(rel, lateral)
        where = select.args.get("where")
        if isinstance(where, exp.Where):
            rel = _Relation(self.builder.add(Filter(rel.node, self._condition(where.this, rel))), rel.fields)

        if self._is_aggregate(select):
            rel, replacements = self._plan_aggregate(select, rel)
            having = select.args.get("having")
            if isinstance(having, exp.Having):
                condition = self._condition(having.this, rel, replacements)
                rel = _Relation(self.builder.add(Filter(rel.node, condition)), rel.fields)
        else:
            replacements = {}

        names: List[str] = []
        exprs: List[Expression] = []
        for i, proj in enumerate(select.expressions):
            if isinstance(proj, exp.Star) or (isinstance(proj, exp.Column) and isinstance(proj.this, exp.Star)):
                qualifier = normalize_identifier(proj.table) if isinstance(proj, exp.Column) and proj.table else None
                expanded = [(idx, f) for idx, f in enumerate(rel.fields) if qualifier is None or f.qualifier == qualifier]
                if not expanded:
                    raise PlanBuildError(f"Cannot expand {proj.sql(dialect=self.dialect)}")
                for idx, f in expanded:
                    names.append(f.name)
                    exprs.append(ColumnRef(idx))
                continue
            names.append(self._output_name(proj, i))
            exprs.append(self._convert(proj, rel, replacements))
        node = self.builder.add(Project(rel.node, tuple(exprs), tuple(names)))
        out = _Relation(node, [_Field(None, n) for n in names])
        return self._plan_modifiers(select, out)

    def _plan_modifiers(self, query: exp.Expression, rel: _Relation) -> _Relation:
        if isinstance(query.args.get("order"), exp.Order):
            rel = _Relation(self.builder.add(Sort(rel.node)), rel.fields)
        limit = query.args.get("limit")
        if isinstance(limit, (exp.Limit, exp.Fetch)):
            rel = _Relation(self.builder.add(Limit(rel.node, self._fetch(limit))), rel.fields)
        return rel

    def _plan_set_operation(self, query: exp.Expression) -> _Relation:
        branches = [self._plan_query(part) for part in select_parts(query)]
        arity = len(branches[0].fields)
        for b in branches[1:]:
            if len(b.fields) != arity:
                raise PlanBuildError(
                    f"{query.key.upper()} branches have {len(b.fields)} and {arity} columns"
                )
        node = self.builder.add(
            Union(
                branches=tuple(b.node for b in branches),
                kind=query.key.upper(),
                distinct=bool(query.args.get("distinct")),
            )
        )
        return _Relation(node, [_Field(None, f.name) for f in branches[0].fields])

    def _plan_values(self, values: exp.Values) -> _Relation:
        rows = values.expressions
        width = len(rows[0].expressions) if rows and isinstance(rows[0], exp.Tuple) else 1
        names = alias_columns(values.args.get("alias")) or [f"col{i + 1}" for i in range(width)]
        node = self.builder.add(Values(tuple(names)))
        return _Relation(node, [_Field(normalize_identifier(values.alias) or None, n) for n in names])

    # --------------- sources ---------------
    def _plan_source(self, term: exp.Expression) -> _Relation:
        if isinstance(term, exp.Table):
            catalog, db, name = table_parts(term)
            alias = normalize_identifier(term.alias) or name
            if catalog is None and db is None and name in self._ctes:
                return self._ctes[name].requalify(alias)
            table = self._lookup(term)
            node = self.builder.scan(table.identifier)
            return _Relation(node, [_Field(alias, c) for c in table.column_names()])
        if isinstance(term, exp.Subquery):
            rel = self._plan_query(term.this)
            return rel.requalify(normalize_identifier(term.alias) or None)
        if isinstance(term, exp.Values):
            return self._plan_values(term)
        raise PlanBuildError(f"Unsupported FROM source: {term.sql(dialect=self.dialect)}")

    def _plan_join(self, left: _Relation, join: exp.Join) -> _Relation:
        if isinstance(join.this, exp.Lateral):
            return self._plan_lateral(left, join.this)
        right = self._plan_source(join.this)
        combined = left.fields + right.fields
        scope = _Relation(-1, combined)
        on = join.args.get("on")
        condition = self._condition(on, scope) if isinstance(on, exp.Expression) else None
        using = join.args.get("using")
        if using:
            refs: List[Expression] = []
            for ident in using:
                name = normalize_identifier(ident.name)
                lhs, rhs = left.lookup(name), right.lookup(name)
                if not lhs or not rhs:
                    raise PlanBuildError(f"USING column '{name}' is missing on one side of the join")
                refs.extend((ColumnRef(lhs[0]), ColumnRef(len(left.fields) + rhs[0])))
            condition = Call("USING", tuple(refs), f"USING ({', '.join(i.name for i in using)})")
        kind = " ".join(p for p in (join.side, join.kind) if p).upper() or "INNER"
        node = self.builder.add(Join(left.node, right.node, condition, kind))
        return _Relation(node, combined)

    def _plan_lateral(self, rel: _Relation, lateral: exp.Lateral) -> _Relation:
        call = self._convert(lateral.this, rel)
        if not isinstance(call, Call):
            raise PlanBuildError(f"Unsupported lateral source: {lateral.sql(dialect=self.dialect)}")
        alias = lateral.args.get("alias")
        qualifier = normalize_identifier(alias_to_str(alias))
        names = alias_columns(alias) or ["col"]
        node = self.builder.add(TableFunctionScan(rel.node, call, tuple(names)))
        return _Relation(node, rel.fields + [_Field(qualifier, n) for n in names])

    # --------------- aggregation ---------------
    def _is_aggregate(self, select: exp.Select) -> bool:
        if isinstance(select.args.get("group"), exp.Group):
            return True
        return any(self._aggregate_calls(p) for p in select.expressions)

    def _aggregate_calls(self, node: exp.Expression) -> List[exp.AggFunc]:
        """Outermost aggregate calls of this query level; windowed calls and subqueries are skipped."""
        if isinstance(node, exp.AggFunc):
            return [node]
        if isinstance(node, (exp.Window, exp.Subquery, exp.Select)):
            return []
        out: List[exp.AggFunc] = []
        for child in node.iter_expressions():
            out.extend(self._aggregate_calls(child))
        return out

    def _plan_aggregate(self, select: exp.Select, rel: _Relation) -> Tuple[_Relation, Dict[exp.Expression, int]]:
        projections = [p.this if isinstance(p, exp.Alias) else p for p in select.expressions]
        aliases = {normalize_identifier(p.alias): p.this for p in select.expressions if isinstance(p, exp.Alias)}

        group_nodes: List[exp.Expression] = []
        group = select.args.get("group")
        for g in (group.expressions if isinstance(group, exp.Group) else []):
            if isinstance(g, exp.Literal) and g.is_int:
                g = projections[int(g.this) - 1]
            elif isinstance(g, exp.Column) and not g.table and not rel.lookup(normalize_identifier(g.name)):
                g = aliases.get(normalize_identifier(g.name), g)
            group_nodes.append(g)

        agg_nodes: List[exp.AggFunc] = []
        sources = list(select.expressions)
        if isinstance(select.args.get("having"), exp.Having):
            sources.append(select.args["having"])
        for src in sources:
            for agg in self._aggregate_calls(src):
                if agg not in agg_nodes:
                    agg_nodes.append(agg)

        group_by = tuple(self._convert(g, rel) for g in group_nodes)
        aggregates = []
        for agg in agg_nodes:
            call = self._convert(agg, rel)
            aggregates.append(call)

        fields: List[_Field] = []
        replacements: Dict[exp.Expression, int] = {}
        for i, (g, converted) in enumerate(zip(group_nodes, group_by)):
            if isinstance(converted, ColumnRef):
                fields.append(rel.fields[converted.index])
            else:
                fields.append(_Field(None, f"_g{i}"))
                replacements[g] = i
        for j, agg in enumerate(agg_nodes):
            fields.append(_Field(None, f"_a{j}"))
            replacements[agg] = len(group_nodes) + j

        node = self.builder.add(
            Aggregate(rel.node, group_by, tuple(aggregates), tuple(f.name for f in fields))
        )
        return _Relation(node, fields), replacements

    # --------------- target binding ---------------
    def _partition_values(self, insert: exp.Insert, table: Table, columns: Optional[List[str]]) -> List[Expression]:
        spec = insert.this.find(exp.Partition)
        if spec is None:
            spec = insert.args.get("partition")
        if not isinstance(spec, exp.Partition):
            return []
        keys = list(table.partition_keys)
        targets = columns or table.physical_column_names()
        positional = len([c for c in targets if not table.is_partition(c)])

        given: Dict[str, Optional[exp.Expression]] = {}
        for item in spec.expressions:
            if isinstance(item, exp.EQ):
                given[normalize_identifier(item.this.name)] = item.expression
            else:
                given[normalize_identifier(item.name)] = None
        unknown = [k for k in given if k not in keys]
        if unknown or len(given) != len(keys):
            raise SchemaMismatch(None, f"PARTITION clause {sorted(given)} does not match partition keys {keys} of {table.identifier}")

        empty = _Relation(-1)
        values: List[Expression] = []
        dynamic = 0
        for key in keys:
            value = given[key]
            if value is None:
                # dynamic partition: supplied by the trailing select columns
                values.append(ColumnRef(positional + dynamic))
                dynamic += 1
            else:
                values.append(self._convert(value, empty))
        return values

    # --------------- expressions ---------------
    def _convert(self, node: exp.Expression, rel: _Relation,
                 replacements: Optional[Dict[exp.Expression, int]] = None) -> Expression:
        if replacements and node in replacements:
            return ColumnRef(replacements[node])
        if isinstance(node, (exp.Alias, exp.Paren)):
            return self._convert(node.this, rel, replacements)
        if isinstance(node, exp.Column):
            if isinstance(node.this, exp.Star):
                raise PlanBuildError(f"Unexpected star in expression: {node.sql(dialect=self.dialect)}")
            return ColumnRef(self._column_index(node, rel))
        if isinstance(node, _CONSTANTS):
            return Literal(node.sql(dialect=self.dialect))
        if isinstance(node, (exp.Subquery, exp.Select)) or is_set_operation(node):
            raise PlanBuildError(f"Subqueries in expressions are not supported: {node.sql(dialect=self.dialect)}")
        args = tuple(self._convert(child, rel, replacements) for child in node.iter_expressions())
        return Call(function_name(node), args, node.sql(dialect=self.dialect))

    def _condition(self, node: exp.Expression, rel: _Relation,
                   replacements: Optional[Dict[exp.Expression, int]] = None) -> Optional[Expression]:
        """Convert a predicate; predicates with subqueries are dropped since they produce no column."""
        if node.find(exp.Select) is not None:
            self.logger.debug(f"Skipping predicate with subquery: {node.sql(dialect=self.dialect)}")
            return None
        return self._convert(node, rel, replacements)

    def _column_index(self, column: exp.Column, rel: _Relation) -> int:
        name = normalize_identifier(column.name)
        qualifier = normalize_identifier(column.table) or None
        matches = rel.lookup(name, qualifier)
        if not matches:
            shown = f"{qualifier}.{name}" if qualifier else name
            raise PlanBuildError(f"Unknown column '{shown}'")
        if len(matches) > 1:
            self.logger.debug(f"Ambiguous column '{name}', binding to the first of {len(matches)} candidates")
        return matches[0]

    # --------------- helpers ---------------
    def _lookup(self, node: exp.Table) -> Table:
        catalog, db, name = table_parts(node)
        identifier = TableIdentifier.of(catalog or self.catalog, db or self.database, name)
        table = self.registry.lookup(identifier)
        if table is None:
            raise UnknownTable(identifier)
        return table

    def _output_name(self, proj: exp.Expression, position: int) -> str:
        if isinstance(proj, exp.Alias):
            return normalize_identifier(proj.alias)
        if isinstance(proj, exp.Column):
            return normalize_identifier(proj.name)
        return f"_c{position}"

    def _fetch(self, limit: exp.Expression) -> Optional[int]:
        value = limit.args.get("expression") or limit.this
        if isinstance(value, exp.Literal) and value.is_int:
            return int(value.this)
        return None
