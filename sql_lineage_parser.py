import argparse
import csv
import glob
import json
import os
import sys
from typing import List, Optional

from column_lineage import LineageClient, SchemaRegistry
from column_lineage.catalog_loader import load_schema_csv, load_schema_file, registry_from_dict
from column_lineage.core.schema import DEFAULT_CATALOG, DEFAULT_DATABASE
from column_lineage.errors import LineageError
from column_lineage.frontend.sqlglot_adapter import SqlglotAdapter
from column_lineage.logger import get_logger
from column_lineage.models import CSV_HEADER, LineageEdge


def find_sql_files(folder: str) -> List[str]:
	pattern = os.path.join(folder, "**", "*.sql")
	return sorted(glob.glob(pattern, recursive=True))


def write_csv(path: str, rows: List[LineageEdge]) -> None:
	with open(path, "w", encoding="utf-8", newline="") as f:
		writer = csv.writer(f)
		writer.writerow(CSV_HEADER)
		for r in rows:
			writer.writerow(r.as_csv_row())


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="Column-level SQL lineage using sqlglot")
	parser.add_argument("--sql-folder", default="sql", help="Folder containing .sql files")
	parser.add_argument(
		"--dialect",
		default="spark,hive",
		help="Comma-separated sqlglot dialects, tried in order per file (e.g., spark,hive)",
	)
	parser.add_argument("--catalog", default=DEFAULT_CATALOG, help="Catalog for unqualified table names")
	parser.add_argument("--database", default=DEFAULT_DATABASE, help="Database for unqualified table names")
	parser.add_argument(
		"--output",
		default="output.csv",
		help="Path to output CSV file",
	)
	parser.add_argument(
		"--log-level", default=os.getenv("LOG_LEVEL", "INFO"), help="Logging level"
	)
	parser.add_argument(
		"--schema",
		default=None,
		help="JSON string of schema dict, e.g., '{\"table\": [\"col1\", \"col2\"]}'",
	)
	parser.add_argument(
		"--schema-file",
		default=None,
		help="Path to JSON file containing schema dict",
	)
	parser.add_argument(
		"--schema-csv",
		default=None,
		help="Path to CSV file with columns: database,table,column,data_type[,partition]",
	)
	return parser


def load_registry(args, logger) -> Optional[SchemaRegistry]:
	"""Resolve the base schema; CSV wins over a JSON file, which wins over inline JSON."""
	if args.schema_csv:
		if not os.path.exists(args.schema_csv):
			logger.error(f"Schema CSV not found: {args.schema_csv}")
			return None
		try:
			return load_schema_csv(args.schema_csv, args.catalog, args.database)
		except (OSError, ValueError) as e:
			logger.error(f"Failed to parse schema CSV {args.schema_csv}: {e}")
			return None
	if args.schema_file:
		try:
			return load_schema_file(args.schema_file, args.catalog, args.database)
		except (json.JSONDecodeError, OSError, ValueError) as e:
			logger.error(f"Error loading schema from {args.schema_file}: {e}")
			return None
	if args.schema:
		try:
			return registry_from_dict(json.loads(args.schema), args.catalog, args.database)
		except (json.JSONDecodeError, ValueError) as e:
			logger.error(f"Invalid schema JSON: {e}")
			return None
	# Auto-load global schema.json if present
	default_schema_path = os.path.join(os.getcwd(), "schema.json")
	if os.path.exists(default_schema_path):
		try:
			registry = load_schema_file(default_schema_path, args.catalog, args.database)
			logger.info(f"Loaded global schema.json with {len(registry)} tables")
			return registry
		except (json.JSONDecodeError, OSError, ValueError) as e:
			logger.warning(f"Could not load global schema.json: {e}")
	return SchemaRegistry()


def file_registry(path: str, base: SchemaRegistry, args, logger) -> SchemaRegistry:
	"""Overlay ``<file>_schema.json`` (if any) on the base schema."""
	schema_file = path[: -len(".sql")] + "_schema.json"
	if not os.path.exists(schema_file):
		return base
	try:
		return load_schema_file(schema_file, args.catalog, args.database, base=base)
	except (json.JSONDecodeError, OSError, ValueError) as e:
		logger.debug(f"Error loading schema from {schema_file}: {e}")
		return base


def analyze_file(path: str, dialect: str, registry: SchemaRegistry, args, logger) -> List[LineageEdge]:
	client = LineageClient(adapters=[SqlglotAdapter(dialect)], logger=logger)
	if args.catalog != DEFAULT_CATALOG:
		client.create_catalog(dialect, args.catalog, {"default-database": args.database})
		client.use_catalog(dialect, args.catalog)
	client.use_database(dialect, args.database)
	client.register_tables(dialect, registry)
	with open(path, "r", encoding="utf-8") as f:
		sql_text = f.read()
	return client.analyze_script(dialect, sql_text)


def main(argv: Optional[List[str]] = None) -> int:
	args = build_parser().parse_args(argv)
	logger = get_logger(level=args.log_level)

	registry = load_registry(args, logger)
	if registry is None:
		return 1

	sql_files = find_sql_files(args.sql_folder)
	if not sql_files:
		logger.error(f"No SQL files found in {args.sql_folder}")
		return 2

	dialects = [d.strip().lower() for d in args.dialect.split(",") if d.strip()]
	all_edges: List[LineageEdge] = []

	for path in sql_files:
		per_file = file_registry(path, registry, args, logger)
		parsed = False
		for dialect in dialects:
			try:
				edges = analyze_file(path, dialect, per_file, args, logger)
			except LineageError as e:
				logger.debug(f"Failed to analyze {path} with dialect {dialect}: {e}")
				continue
			all_edges.extend(edges)
			logger.info(f"Successfully analyzed {path} with dialect {dialect}")
			parsed = True
			break
		if not parsed:
			logger.error(f"Failed to analyze {path} with any dialect")

	for e in all_edges:
		print(e)

	write_csv(args.output, all_edges)
	logger.info(f"Wrote lineage to {args.output} with {len(all_edges)} rows")
	return 0


if __name__ == "__main__":
	sys.exit(main())
