"""Column-level lineage for SQL INSERT statements."""

from .client import LineageClient
from .core.analyzer import LineageAnalyzer
from .core.schema import Column, SchemaRegistry, Table, TableIdentifier
from .models import CSV_HEADER, LineageEdge

__version__ = "0.1.0"

__all__ = [
    "CSV_HEADER",
    "Column",
    "LineageAnalyzer",
    "LineageClient",
    "LineageEdge",
    "SchemaRegistry",
    "Table",
    "TableIdentifier",
]
