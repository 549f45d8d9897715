"""
Multi-engine lineage client.

Each plugin code selects one engine adapter and owns an isolated session:
its catalogs, the current catalog and the schema registry snapshot that
DDL statements build up. Sessions never share state, so scripts for
incompatible engine versions can be analyzed side by side.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .core.analyzer import LineageAnalyzer
from .core.schema import DEFAULT_CATALOG, DEFAULT_DATABASE, SchemaRegistry, Table
from .errors import LineageError, PlanBuildError
from .frontend.base import AdapterRegistry, EngineAdapter
from .frontend.sqlglot_adapter import SqlglotAdapter
from .models import LineageEdge

DEFAULT_DATABASE_KEY = "default-database"


@dataclass
class CatalogInfo:
    name: str
    default_database: str
    properties: Dict[str, str] = field(default_factory=dict)


class _Session:
    def __init__(self, adapter: EngineAdapter):
        self.adapter = adapter
        self.catalogs: Dict[str, CatalogInfo] = {
            DEFAULT_CATALOG: CatalogInfo(DEFAULT_CATALOG, DEFAULT_DATABASE),
        }
        self.current_catalog = DEFAULT_CATALOG
        self.current_database = DEFAULT_DATABASE
        self.registry = SchemaRegistry()
        self.lock = threading.Lock()


def default_adapters() -> List[EngineAdapter]:
    return [SqlglotAdapter("hive"), SqlglotAdapter("spark")]


class LineageClient:
    """Entry point for catalog management and lineage analysis per plugin code."""

    def __init__(self, adapters: Optional[Iterable[EngineAdapter]] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.adapters = AdapterRegistry()
        for adapter in (default_adapters() if adapters is None else adapters):
            self.adapters.register(adapter)
        self._sessions: Dict[str, _Session] = {}
        self._sessions_lock = threading.Lock()

    # --------------- sessions ---------------
    def plugin_codes(self) -> List[str]:
        return self.adapters.codes()

    def _session(self, plugin_code: str) -> _Session:
        adapter = self.adapters.get(plugin_code)
        with self._sessions_lock:
            session = self._sessions.get(plugin_code)
            if session is None:
                session = _Session(adapter)
                self._sessions[plugin_code] = session
                self.logger.debug(f"Opened session for plugin {plugin_code} ({adapter!r})")
            return session

    def registry(self, plugin_code: str) -> SchemaRegistry:
        return self._session(plugin_code).registry

    def register_tables(self, plugin_code: str, tables: Iterable[Table]) -> None:
        """Add tables (e.g. loaded from a schema file) to a plugin's registry."""
        session = self._session(plugin_code)
        with session.lock:
            registry = session.registry
            for table in tables:
                registry = registry.with_table(table)
            session.registry = registry

    # --------------- catalogs ---------------
    def create_catalog(self, plugin_code: str, catalog_name: str,
                       properties: Optional[Mapping[str, str]] = None) -> None:
        properties = dict(properties or {})
        session = self._session(plugin_code)
        name = catalog_name.lower()
        self.logger.info(f"[{plugin_code}] CREATE CATALOG {name} WITH ({self.convert_properties(properties)})")
        with session.lock:
            if name in session.catalogs:
                raise LineageError(f"Catalog '{name}' already exists for plugin {plugin_code}")
            session.catalogs[name] = CatalogInfo(
                name=name,
                default_database=properties.get(DEFAULT_DATABASE_KEY, "default").lower(),
                properties=properties,
            )

    def use_catalog(self, plugin_code: str, catalog_name: str) -> None:
        session = self._session(plugin_code)
        name = catalog_name.lower()
        with session.lock:
            if name not in session.catalogs:
                raise LineageError(f"Catalog '{name}' does not exist for plugin {plugin_code}")
            session.current_catalog = name
            session.current_database = session.catalogs[name].default_database

    def use_database(self, plugin_code: str, database: str) -> None:
        session = self._session(plugin_code)
        with session.lock:
            session.current_database = database.lower()

    def current_catalog(self, plugin_code: str) -> CatalogInfo:
        session = self._session(plugin_code)
        return session.catalogs[session.current_catalog]

    @staticmethod
    def convert_properties(properties: Mapping[str, str]) -> str:
        """Render properties as ``'k1'='v1','k2'='v2'`` in insertion order."""
        return ",".join(f"'{k}'='{v}'" for k, v in properties.items())

    # --------------- statements ---------------
    def execute(self, plugin_code: str, sql: str) -> None:
        """Apply every DDL statement in ``sql`` to the current catalog."""
        session = self._session(plugin_code)
        for statement in session.adapter.parse(sql):
            if not session.adapter.is_ddl(statement):
                raise PlanBuildError(f"execute() only accepts DDL, got {type(statement).__name__.upper()}")
            self._apply_ddl(session, statement)

    def analyze_lineage(self, plugin_code: str, catalog: str, database: str, sql: str) -> List[LineageEdge]:
        """Analyze a single INSERT statement resolved against ``catalog.database``."""
        session = self._session(plugin_code)
        statements = session.adapter.parse(sql)
        if len(statements) != 1:
            raise PlanBuildError(f"Expected exactly one statement, got {len(statements)}")
        return self._analyze(session, statements[0], catalog.lower(), database.lower())

    def analyze_script(self, plugin_code: str, sql: str) -> List[LineageEdge]:
        """Run a script: DDL updates the session, each INSERT contributes its edges in order."""
        session = self._session(plugin_code)
        edges: List[LineageEdge] = []
        for statement in session.adapter.parse(sql):
            if session.adapter.is_ddl(statement):
                self._apply_ddl(session, statement)
                continue
            if not session.adapter.is_insert(statement):
                self.logger.debug(f"Skipping {type(statement).__name__.upper()} statement without a target table")
                continue
            edges.extend(self._analyze(session, statement, session.current_catalog, session.current_database))
        return edges

    # --------------- internal ---------------
    def _apply_ddl(self, session: _Session, statement) -> None:
        with session.lock:
            session.registry = session.adapter.apply_ddl(
                statement, session.registry, session.current_catalog, session.current_database
            )

    def _analyze(self, session: _Session, statement, catalog: str, database: str) -> List[LineageEdge]:
        with session.lock:
            registry = session.registry
        plan = session.adapter.build_plan(statement, registry, catalog, database)
        edges = LineageAnalyzer(registry, self.logger).analyze(plan)
        self.logger.info(f"[{session.adapter.plugin_code}] {len(edges)} lineage edges")
        return edges
