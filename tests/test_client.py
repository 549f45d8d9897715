import pytest
from sqlglot import expressions as exp

from column_lineage import LineageClient, LineageEdge, SchemaRegistry, Table, TableIdentifier
from column_lineage.errors import LineageError, PlanBuildError, UnknownPlugin, UnknownTable
from column_lineage.frontend.ddl import apply_ddl
from column_lineage.frontend.sqlglot_adapter import SqlglotAdapter

PLUGIN_CODES = ["flink1.14.x", "flink1.16.x"]
CATALOG = "memory_catalog"
DATABASE = "lineage_db"

ODS_DDL = (
    "CREATE TABLE IF NOT EXISTS ods_mysql_users ("
    "       id                  BIGINT PRIMARY KEY NOT ENFORCED ,"
    "       name                STRING                          ,"
    "       birthday            TIMESTAMP(3)                    ,"
    "       ts                  TIMESTAMP(3)                    ,"
    "       proc_time as proctime()                              "
    ") WITH ( "
    "       'connector' = 'mysql-cdc'            ,"
    "       'hostname'  = '127.0.0.1'       ,"
    "       'port'      = '3306'                 ,"
    "       'username'  = 'root'                 ,"
    "       'password'  = 'xxx'          ,"
    "       'server-time-zone' = 'Asia/Shanghai' ,"
    "       'database-name' = 'demo'             ,"
    "       'table-name'    = 'users' "
    ")"
)

DWD_DDL = (
    "CREATE TABLE IF NOT EXISTS  dwd_hudi_users ( "
    "       id                  BIGINT PRIMARY KEY NOT ENFORCED ,"
    "       name                STRING                          ,"
    "       company_name        STRING                          ,"
    "       birthday            TIMESTAMP(3)                    ,"
    "       ts                  TIMESTAMP(3)                    ,"
    "        `partition`        VARCHAR(20)                      "
    ") PARTITIONED BY (`partition`) WITH ( "
    "       'connector' = 'hudi'                                    ,"
    "       'table.type' = 'COPY_ON_WRITE'                          ,"
    "       'read.streaming.enabled' = 'true'                       ,"
    "       'read.streaming.check-interval' = '1'                    "
    ")"
)


def _client():
    client = LineageClient(adapters=[SqlglotAdapter("spark", plugin_code=code) for code in PLUGIN_CODES])
    properties = {"type": "generic_in_memory", "default-database": DATABASE}
    for code in PLUGIN_CODES:
        client.create_catalog(code, CATALOG, properties)
        client.use_catalog(code, CATALOG)
        client.execute(code, "DROP TABLE IF EXISTS ods_mysql_users ")
        client.execute(code, ODS_DDL)
        client.execute(code, "DROP TABLE IF EXISTS dwd_hudi_users")
        client.execute(code, DWD_DDL)
    return client


def test_insert_select_for_every_plugin():
    client = _client()
    sql = (
        "INSERT INTO dwd_hudi_users "
        "SELECT "
        "   id ,"
        "   name ,"
        "   name as company_name ,"
        "   birthday ,"
        "   ts ,"
        "   DATE_FORMAT(birthday, 'yyyyMMdd') "
        "FROM"
        "   ods_mysql_users"
    )
    expected = LineageEdge.build_result(CATALOG, DATABASE, [
        ["ods_mysql_users", "id", "dwd_hudi_users", "id"],
        ["ods_mysql_users", "name", "dwd_hudi_users", "name"],
        ["ods_mysql_users", "name", "dwd_hudi_users", "company_name"],
        ["ods_mysql_users", "birthday", "dwd_hudi_users", "birthday"],
        ["ods_mysql_users", "ts", "dwd_hudi_users", "ts"],
        ["ods_mysql_users", "birthday", "dwd_hudi_users", "partition", "DATE_FORMAT(birthday, 'yyyyMMdd')"],
    ])
    for code in PLUGIN_CODES:
        assert client.analyze_lineage(code, CATALOG, DATABASE, sql) == expected


def test_ddl_registers_computed_column():
    client = _client()
    table = client.registry(PLUGIN_CODES[0]).get_table(CATALOG, DATABASE, "ods_mysql_users")
    assert table.column_names() == ["id", "name", "birthday", "ts", "proc_time"]
    assert table.column("proc_time").is_computed
    assert table.physical_column_names() == ["id", "name", "birthday", "ts"]


def test_insert_into_table_with_computed_column():
    client = _client()
    sql = "INSERT INTO ods_mysql_users SELECT id, name, birthday, ts FROM ods_mysql_users"
    edges = client.analyze_lineage(PLUGIN_CODES[0], CATALOG, DATABASE, sql)
    assert [e.target_column for e in edges] == ["id", "name", "birthday", "ts"]


def test_ddl_registers_partition_keys():
    client = _client()
    table = client.registry(PLUGIN_CODES[0]).get_table(CATALOG, DATABASE, "dwd_hudi_users")
    assert table.column_names() == ["id", "name", "company_name", "birthday", "ts", "partition"]
    assert table.partition_keys == ("partition",)
    assert client.current_catalog(PLUGIN_CODES[0]).default_database == DATABASE


def test_hive_typed_partition_columns_are_appended():
    client = LineageClient()
    client.execute("hive", "CREATE TABLE sales_p (id BIGINT, amount DOUBLE) PARTITIONED BY (dt STRING)")
    table = client.registry("hive").get_table(None, None, "sales_p")
    assert table.column_names() == ["id", "amount", "dt"]
    assert table.partition_keys == ("dt",)


def test_sessions_are_isolated_per_plugin():
    client = _client()
    client.execute(PLUGIN_CODES[0], "CREATE TABLE only_here (a STRING)")
    assert client.registry(PLUGIN_CODES[0]).get_table(CATALOG, DATABASE, "only_here") is not None
    assert client.registry(PLUGIN_CODES[1]).get_table(CATALOG, DATABASE, "only_here") is None


def test_registry_snapshot_survives_later_ddl():
    client = _client()
    before = client.registry(PLUGIN_CODES[0])
    client.execute(PLUGIN_CODES[0], "DROP TABLE ods_mysql_users")
    assert before.get_table(CATALOG, DATABASE, "ods_mysql_users") is not None
    assert client.registry(PLUGIN_CODES[0]).get_table(CATALOG, DATABASE, "ods_mysql_users") is None


def test_create_existing_table_without_guard():
    client = _client()
    with pytest.raises(LineageError):
        client.execute(PLUGIN_CODES[0], "CREATE TABLE ods_mysql_users (id BIGINT)")


def test_drop_missing_table_without_guard():
    client = LineageClient()
    client.execute("spark", "DROP TABLE IF EXISTS nothing")
    with pytest.raises(UnknownTable):
        client.execute("spark", "DROP TABLE nothing")


def test_drop_existing_table():
    client = _client()
    code = PLUGIN_CODES[0]
    client.execute(code, "DROP TABLE IF EXISTS ods_mysql_users")
    client.execute(code, "DROP TABLE dwd_hudi_users")
    registry = client.registry(code)
    assert registry.get_table(CATALOG, DATABASE, "ods_mysql_users") is None
    assert registry.get_table(CATALOG, DATABASE, "dwd_hudi_users") is None
    assert client.registry(PLUGIN_CODES[1]).get_table(CATALOG, DATABASE, "dwd_hudi_users") is not None


def test_drop_every_listed_table():
    registry = SchemaRegistry.of([
        Table.create("a", ["x"], catalog=CATALOG, database=DATABASE),
        Table.create("b", ["x"], catalog=CATALOG, database=DATABASE),
        Table.create("c", ["x"], catalog=CATALOG, database=DATABASE),
    ])
    targets = [exp.to_table("a"), exp.to_table("missing"), exp.to_table("b")]
    guarded = exp.Drop(kind="TABLE", exists=True, tables=targets)
    remaining = apply_ddl(guarded, registry, CATALOG, DATABASE, "spark")
    assert [t.name for t in remaining] == ["c"]
    unguarded = exp.Drop(kind="TABLE", tables=[t.copy() for t in targets])
    with pytest.raises(UnknownTable):
        apply_ddl(unguarded, registry, CATALOG, DATABASE, "spark")


def test_execute_rejects_queries():
    client = LineageClient()
    with pytest.raises(PlanBuildError):
        client.execute("spark", "SELECT 1")


def test_unknown_plugin():
    client = LineageClient()
    with pytest.raises(UnknownPlugin):
        client.execute("flink1.99.x", "DROP TABLE IF EXISTS t")
    assert client.plugin_codes() == ["hive", "spark"]


def test_use_unknown_catalog():
    client = LineageClient()
    with pytest.raises(LineageError):
        client.use_catalog("spark", "nope")


def test_analyze_script_applies_ddl_then_inserts():
    client = LineageClient()
    script = """
    CREATE TABLE src (a STRING, b STRING);
    CREATE TABLE dst (a STRING, ab STRING);
    SELECT a FROM src;
    INSERT INTO dst SELECT a, CONCAT(a, b) FROM src;
    """
    edges = client.analyze_script("hive", script)
    assert [(e.source_column, e.target_column) for e in edges] == [("a", "a"), ("a", "ab"), ("b", "ab")]
    assert edges[0].target_table == TableIdentifier.of(None, None, "dst")
    assert edges[1].transform == edges[2].transform


def test_analyze_lineage_expects_one_statement():
    client = _client()
    with pytest.raises(PlanBuildError):
        client.analyze_lineage(PLUGIN_CODES[0], CATALOG, DATABASE, "SELECT 1; SELECT 2")


def test_convert_properties():
    properties = {
        "type": "jdbc",
        "default-database": "lineage_catalog",
        "username": "root",
        "password": "root@123456",
        "base-url": "jdbc:mysql://127.0.0.1:3306",
    }
    assert LineageClient.convert_properties(properties) == (
        "'type'='jdbc','default-database'='lineage_catalog','username'='root',"
        "'password'='root@123456','base-url'='jdbc:mysql://127.0.0.1:3306'"
    )
