"""
Pytest configuration and fixtures for the lead graph tests.

This file provides:
- Pytest markers
- Projection settings fixtures
- Lightweight stand-ins for Neo4j graph entities
"""

import os
import sys
from pathlib import Path

import pytest

# Add parent directory to path
BASE_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BASE_DIR))

# Keep the API module from dialling a real database at import time.
os.environ.setdefault("NEO4J_ENABLED", "false")

from neo4j.graph import Graph, Node, Path

from leadgraph.config import ProjectionSettings


class FakeNode(dict):
    """Mapping-shaped node as produced by APOC/JSON payloads."""

    def __init__(self, identity, labels, **properties):
        super().__init__(identity=identity, labels=list(labels), properties=properties)


class FakeRelationship(dict):
    def __init__(self, identity, rel_type, start, end, **properties):
        super().__init__(identity=identity, type=rel_type, start=start, end=end, properties=properties)


class DriverGraph:
    """Builds real ``neo4j.graph`` entities the way the driver hydrates them."""

    def __init__(self):
        self.graph = Graph()
        self._next_id = 0

    def _legacy_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def node(self, element_id, labels, **properties):
        return Node(self.graph, element_id, self._legacy_id(), labels, properties)

    def relationship(self, element_id, rel_type, start, end, **properties):
        rel_cls = self.graph.relationship_type(rel_type)
        relationship = rel_cls(self.graph, element_id, self._legacy_id(), properties)
        relationship._start_node = start
        relationship._end_node = end
        return relationship

    @staticmethod
    def path(start, *relationships):
        return Path(start, *relationships)


@pytest.fixture
def settings() -> ProjectionSettings:
    """Default projection settings."""
    return ProjectionSettings()


@pytest.fixture
def node_factory():
    return FakeNode


@pytest.fixture
def relationship_factory():
    return FakeRelationship


@pytest.fixture
def driver_graph():
    return DriverGraph()


@pytest.fixture(autouse=True)
def isolate_timestamp_env(monkeypatch):
    """Tests assume the built-in timestamp allow-list."""
    monkeypatch.delenv("GRAPH_TIMESTAMP_FIELDS", raising=False)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: marks tests that need a live Neo4j instance"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
