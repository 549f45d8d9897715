import pytest

from column_lineage.core.analyzer import LineageAnalyzer
from column_lineage.core.plan import Aggregate, Sink, TableFunctionScan, Union
from column_lineage.core.schema import DEFAULT_CATALOG, DEFAULT_DATABASE, SchemaRegistry, Table
from column_lineage.errors import PlanBuildError, SchemaMismatch, UnknownTable
from column_lineage.frontend.sqlglot_adapter import SqlglotAdapter

SCHEMA = SchemaRegistry.of([
    Table.create("t", ["id", "name"]),
    Table.create("u", ["id", "company_name"]),
    Table.create("people", ["id", "first_name", "last_name"]),
    Table.create("people_out", ["id", "full_name"]),
    Table.create("orders", ["order_id", "customer_id", "amount"]),
    Table.create("customers", ["id", "name"]),
    Table.create("order_report", ["order_id", "customer_name", "amount"]),
    Table.create("emp", ["dept", "salary"]),
    Table.create("dept_totals", ["dept", "total"]),
    Table.create("docs", ["doc_id", "body"]),
    Table.create("doc_words", ["doc_id", "word"]),
    Table.create("sales", ["id", "amount", "sale_date"]),
    Table.create("sales_p", ["id", "amount", "dt"], ["dt"]),
    Table.create("ids", ["id"]),
])


def _plan(sql: str, dialect: str = "spark", registry=SCHEMA):
    adapter = SqlglotAdapter(dialect)
    (statement,) = adapter.parse(sql)
    return adapter.build_plan(statement, registry, DEFAULT_CATALOG, DEFAULT_DATABASE)


def _lineage(sql: str, dialect: str = "spark", registry=SCHEMA):
    return LineageAnalyzer(registry).analyze(_plan(sql, dialect, registry))


def _tuples(edges):
    return [e.as_tuple() for e in edges]


def test_direct_and_renamed_copy():
    edges = _lineage("INSERT INTO u (id, company_name) SELECT id, name AS company_name FROM t")
    assert _tuples(edges) == [
        ("t", "id", "u", "id"),
        ("t", "name", "u", "company_name"),
    ]


def test_insert_without_partition_clause_has_no_partition_values():
    for dialect in ("spark", "hive"):
        sink = _plan("INSERT INTO sales_p SELECT id, amount, sale_date FROM sales", dialect).root_node
        assert isinstance(sink, Sink)
        assert sink.partition_values == ()
        assert sink.columns is None


def test_function_tags_transform():
    edges = _lineage("INSERT INTO u SELECT id, UPPER(name) FROM t")
    assert _tuples(edges) == [
        ("t", "id", "u", "id"),
        ("t", "name", "u", "company_name", "UPPER(name)"),
    ]


def test_multi_argument_function():
    edges = _lineage(
        "INSERT INTO people_out SELECT p.id, CONCAT(p.first_name, ' ', p.last_name) AS full_name FROM people p"
    )
    assert [(e.source_column, e.target_column) for e in edges] == [
        ("id", "id"),
        ("first_name", "full_name"),
        ("last_name", "full_name"),
    ]
    assert edges[0].transform is None
    assert edges[1].transform == edges[2].transform
    assert edges[1].transform == "CONCAT(p.first_name, ' ', p.last_name)"


def test_join_with_aliases():
    edges = _lineage(
        "INSERT INTO order_report "
        "SELECT o.order_id, c.name, o.amount "
        "FROM orders o JOIN customers c ON o.customer_id = c.id "
        "WHERE o.amount > 0"
    )
    assert _tuples(edges) == [
        ("orders", "order_id", "order_report", "order_id"),
        ("customers", "name", "order_report", "customer_name"),
        ("orders", "amount", "order_report", "amount"),
    ]


def test_star_expansion():
    edges = _lineage("INSERT INTO u SELECT * FROM t")
    assert _tuples(edges) == [
        ("t", "id", "u", "id"),
        ("t", "name", "u", "company_name"),
    ]


def test_qualified_star_expansion():
    edges = _lineage("INSERT INTO customers SELECT c.* FROM customers c JOIN orders o ON o.customer_id = c.id")
    assert _tuples(edges) == [
        ("customers", "id", "customers", "id"),
        ("customers", "name", "customers", "name"),
    ]


def test_cte_shared_by_union_branches():
    sql = (
        "INSERT INTO ids "
        "WITH x AS (SELECT id FROM t) "
        "SELECT id FROM x UNION ALL SELECT id FROM x"
    )
    plan = _plan(sql)
    unions = [op for op in plan.nodes if isinstance(op, Union)]
    assert len(unions) == 1
    assert len(set(unions[0].branches)) == 2
    assert _tuples(LineageAnalyzer(SCHEMA).analyze(plan)) == [("t", "id", "ids", "id")]


def test_union_of_two_tables_is_additive():
    edges = _lineage("INSERT INTO ids SELECT id FROM t UNION SELECT id FROM customers")
    assert _tuples(edges) == [
        ("t", "id", "ids", "id"),
        ("customers", "id", "ids", "id"),
    ]


def test_group_by_aggregate():
    sql = "INSERT INTO dept_totals SELECT dept, SUM(salary) AS total FROM emp GROUP BY dept HAVING SUM(salary) > 10"
    plan = _plan(sql)
    assert any(isinstance(op, Aggregate) for op in plan.nodes)
    assert _tuples(LineageAnalyzer(SCHEMA).analyze(plan)) == [
        ("emp", "dept", "dept_totals", "dept"),
        ("emp", "salary", "dept_totals", "total", "SUM(salary)"),
    ]


def test_lateral_view_fans_out_from_source_column():
    sql = (
        "INSERT INTO doc_words "
        "SELECT doc_id, w FROM docs LATERAL VIEW EXPLODE(body) tbl AS w"
    )
    plan = _plan(sql, dialect="hive")
    assert any(isinstance(op, TableFunctionScan) for op in plan.nodes)
    edges = LineageAnalyzer(SCHEMA).analyze(plan)
    assert [(e.source_column, e.target_column) for e in edges] == [("doc_id", "doc_id"), ("body", "word")]
    assert edges[0].transform is None
    assert edges[1].transform == "EXPLODE(body)"


def test_hive_static_partition():
    edges = _lineage(
        "INSERT OVERWRITE TABLE sales_p PARTITION (dt='2024-01-01') SELECT id, amount FROM sales",
        dialect="hive",
    )
    assert _tuples(edges) == [
        ("sales", "id", "sales_p", "id"),
        ("sales", "amount", "sales_p", "amount"),
    ]


def test_hive_dynamic_partition():
    plan = _plan(
        "INSERT OVERWRITE TABLE sales_p PARTITION (dt) SELECT id, amount, sale_date FROM sales",
        dialect="hive",
    )
    sink = plan.root_node
    assert isinstance(sink, Sink)
    assert len(sink.partition_values) == 1
    assert _tuples(LineageAnalyzer(SCHEMA).analyze(plan)) == [
        ("sales", "id", "sales_p", "id"),
        ("sales", "amount", "sales_p", "amount"),
        ("sales", "sale_date", "sales_p", "dt"),
    ]


def test_partition_clause_must_name_partition_keys():
    with pytest.raises(SchemaMismatch):
        _plan("INSERT OVERWRITE TABLE sales_p PARTITION (id=1) SELECT id, amount FROM sales", dialect="hive")


def test_values_insert_has_no_lineage():
    assert _lineage("INSERT INTO u VALUES (1, 'acme')") == []


def test_constant_projection_emits_no_edge():
    assert _tuples(_lineage("INSERT INTO u SELECT id, 'acme' FROM t")) == [("t", "id", "u", "id")]


def test_subquery_source_and_order_limit():
    edges = _lineage(
        "INSERT INTO u SELECT s.id, s.n FROM (SELECT id, LOWER(name) AS n FROM t) s ORDER BY s.id LIMIT 5"
    )
    assert _tuples(edges) == [
        ("t", "id", "u", "id"),
        ("t", "name", "u", "company_name", "LOWER(name)"),
    ]


def test_where_with_subquery_is_ignored():
    edges = _lineage("INSERT INTO u SELECT id, name FROM t WHERE id IN (SELECT id FROM customers)")
    assert _tuples(edges) == [
        ("t", "id", "u", "id"),
        ("t", "name", "u", "company_name"),
    ]


def test_join_using():
    edges = _lineage("INSERT INTO u SELECT t.id, c.name FROM t JOIN customers c USING (id)")
    assert _tuples(edges) == [
        ("t", "id", "u", "id"),
        ("customers", "name", "u", "company_name"),
    ]


def test_scalar_subquery_is_rejected():
    with pytest.raises(PlanBuildError):
        _plan("INSERT INTO u SELECT id, (SELECT MAX(name) FROM customers) FROM t")


def test_unknown_column():
    with pytest.raises(PlanBuildError):
        _plan("INSERT INTO u SELECT id, nope FROM t")


def test_unknown_source_table():
    with pytest.raises(UnknownTable):
        _plan("INSERT INTO u SELECT id, name FROM missing")


def test_set_operation_arity_mismatch():
    with pytest.raises(PlanBuildError):
        _plan("INSERT INTO ids SELECT id FROM t UNION ALL SELECT id, name FROM t")


def test_only_insert_builds_a_plan():
    with pytest.raises(PlanBuildError):
        _plan("SELECT id FROM t")


def test_parse_error_is_wrapped():
    with pytest.raises(PlanBuildError):
        SqlglotAdapter("spark").parse("INSERT INTO u SELECT (id FROM t")
