"""
GraphService - thin Neo4j client used by the dashboard reports.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from neo4j import Driver, GraphDatabase
from neo4j.exceptions import Neo4jError, DriverError

logger = logging.getLogger(__name__)


class GraphUnavailableError(RuntimeError):
    """Raised when a report needs the graph but Neo4j is disabled or unreachable."""


class GraphQueryError(RuntimeError):
    """Wraps a driver failure raised while running a query."""

    def __init__(self, message: str, *, query: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.query = query
        self.cause = cause


class GraphService:
    """Wrapper around the Neo4j Python driver: run a parameterized query, get rows back."""

    def __init__(self, config: Dict[str, Any]):
        graph_cfg = dict(config.get("graph", {}) or {})
        env_enabled = os.getenv("NEO4J_ENABLED")
        if env_enabled is not None:
            graph_cfg["enabled"] = env_enabled.lower() == "true"

        env_uri = os.getenv("NEO4J_URI")
        env_username = os.getenv("NEO4J_USER") or os.getenv("NEO4J_USERNAME")
        env_password = os.getenv("NEO4J_PASSWORD")
        env_database = os.getenv("NEO4J_DATABASE")

        if env_uri:
            graph_cfg["uri"] = env_uri
        if env_username:
            graph_cfg["username"] = env_username
        if env_password:
            graph_cfg["password"] = env_password
        if env_database:
            graph_cfg["database"] = env_database

        self.enabled: bool = bool(graph_cfg.get("enabled"))
        self.uri: Optional[str] = graph_cfg.get("uri")
        self.username: Optional[str] = graph_cfg.get("username")
        self.password: Optional[str] = graph_cfg.get("password")
        self.database: Optional[str] = graph_cfg.get("database")

        self._driver: Optional[Driver] = None
        self._last_query: Optional[Dict[str, Any]] = None
        if self.is_available():
            self._connect()

    def _connect(self) -> None:
        try:
            self._driver = GraphDatabase.driver(
                self.uri,
                auth=(self.username or "", self.password or ""),
            )
            logger.info("[GRAPH] Connected to Neo4j at %s", self.uri)
        except (DriverError, Neo4jError, ValueError) as exc:
            logger.error("[GRAPH] Failed to connect to Neo4j: %s", exc)
            self.enabled = False

    def close(self) -> None:
        if self._driver:
            try:
                self._driver.close()
            finally:
                self._driver = None

    def is_available(self) -> bool:
        return bool(
            self.enabled
            and self.uri
            and self.username is not None
            and self.password is not None
        )

    # ------------------------------------------------------------------
    # Query APIs

    def run_query(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Execute ``query`` and return one dict per record.

        Values are left exactly as the driver produced them (nodes,
        relationships, temporal types); shaping is the projector's job.
        Returns ``[]`` when the graph is disabled. Driver failures are raised
        as :class:`GraphQueryError`.
        """
        if not self._driver:
            self._record_query_metadata(query, params, error="driver_unavailable")
            return []
        try:
            with self._driver.session(database=self.database or None) as session:
                result = session.run(query, params or {})
                rows = []
                for record in result:
                    row = {key: record[key] for key in record.keys()}
                    rows.append(row)
                self._record_query_metadata(query, params, row_count=len(rows))
                return rows
        except (Neo4jError, DriverError) as exc:
            logger.error("[GRAPH] Query failed: %s", exc)
            self._record_query_metadata(query, params, error=str(exc))
            raise GraphQueryError(str(exc), query=query, cause=exc) from exc

    def last_query_metadata(self) -> Optional[Dict[str, Any]]:
        if not self._last_query:
            return None
        return dict(self._last_query)

    # ------------------------------------------------------------------
    # Internal helpers

    def _record_query_metadata(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        *,
        row_count: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        self._last_query = {
            "cypher": query.strip() if isinstance(query, str) else query,
            "params": params or {},
            "database": self.database or None,
            "row_count": row_count,
            "error": error,
        }
