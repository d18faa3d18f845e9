"""
Visualization graph builder.

Folds (node, relationship, node) traversal rows into the ``{nodes, edges}``
payload consumed by the dashboard network view.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from ..config.models import ProjectionSettings
from .entities import (
    entity_identity,
    entity_labels,
    entity_properties,
    identity_to_string,
    relationship_endpoints,
    relationship_type,
)
from .projection import RecordProjector

logger = logging.getLogger(__name__)

UNKNOWN_GROUP = "Unknown"
UNKNOWN_NODE_LABEL = "Unknown Node"
COMPLEX_VALUE_MARKER = "[Complex Object]"

NAME_KEYS = ("nome", "name")
# (property, display prefix) pairs for identifier-like fallbacks.
IDENTIFIER_KEYS = (("idWhatsapp", "Lead: "),)
IDENTIFIER_PREVIEW_CHARS = 10


def _display(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return COMPLEX_VALUE_MARKER
    return str(value)


def node_display_label(properties: Dict[str, Any], labels: Sequence[str]) -> str:
    for key in NAME_KEYS:
        if properties.get(key):
            return str(properties[key])
    for key, prefix in IDENTIFIER_KEYS:
        if properties.get(key):
            return f"{prefix}{str(properties[key])[:IDENTIFIER_PREVIEW_CHARS]}..."
    if properties.get("type"):
        return str(properties["type"])
    if labels:
        return ", ".join(labels)
    return UNKNOWN_NODE_LABEL


def node_title(
    properties: Dict[str, Any],
    labels: Sequence[str],
    node_id: str,
    list_items: int = 3,
) -> str:
    """Multi-line hover synopsis; lists are cut to ``list_items`` and maps elided."""
    lines = [f"ID: {node_id}", f"Labels: {', '.join(labels)}"]
    for key, value in properties.items():
        if isinstance(value, list):
            preview = ", ".join("" if item is None else _display(item) for item in value[:list_items])
            suffix = "..." if len(value) > list_items else ""
            lines.append(f"{key}: {preview}{suffix}")
        elif isinstance(value, dict):
            lines.append(f"{key}: {COMPLEX_VALUE_MARKER}")
        else:
            lines.append(f"{key}: {_display(value)}")
    return "\n".join(lines).strip()


class GraphProjectionBuilder:
    """
    Incrementally builds a deduplicated visualization graph.

    Nodes are keyed by the string form of their identity. A node keeps the
    position of its first appearance but its content follows the latest row
    that carried it. Edges always use the relationship's own endpoints, so
    a relationship whose companion node is missing still yields an edge.
    """

    def __init__(
        self,
        projector: Optional[RecordProjector] = None,
        settings: Optional[ProjectionSettings] = None,
        *,
        node_keys: Sequence[str] = ("node1", "node2"),
        relationship_key: str = "relationship",
    ):
        self.settings = settings or (projector.settings if projector else ProjectionSettings())
        self.projector = projector or RecordProjector(self.settings)
        self.node_keys = tuple(node_keys)
        self.relationship_key = relationship_key
        self._nodes: Dict[str, Dict[str, Any]] = {}
        self._edges: List[Dict[str, Any]] = []
        self._seen_relationships: Set[str] = set()

    def reset(self) -> None:
        self._nodes = {}
        self._edges = []
        self._seen_relationships = set()

    def build(self, rows: Iterable[Any]) -> Dict[str, List[Dict[str, Any]]]:
        self.reset()
        for row in rows or []:
            self.add_row(row)
        return self.payload()

    def add_row(self, row: Any) -> None:
        if row is None:
            return
        for key in self.node_keys:
            node = row.get(key)
            if node is not None:
                self.add_node(node)
        relationship = row.get(self.relationship_key)
        if relationship is not None:
            self.add_relationship(relationship)

    def add_node(self, node: Any) -> Optional[Dict[str, Any]]:
        node_id = identity_to_string(entity_identity(node))
        if node_id is None:
            logger.debug("[PROJECTION] Skipping node without identity: %r", node)
            return None
        labels = entity_labels(node)
        props = self.projector.project(entity_properties(node))
        visual_node = {
            "id": node_id,
            "label": node_display_label(props, labels),
            "group": labels[0] if labels else UNKNOWN_GROUP,
            "title": node_title(props, labels, node_id, self.settings.title_list_items),
            "properties": props,
        }
        self._nodes[node_id] = visual_node
        return visual_node

    def add_relationship(self, relationship: Any) -> Optional[Dict[str, Any]]:
        rel_id = identity_to_string(entity_identity(relationship))
        if self.settings.dedupe_edges and rel_id is not None:
            if rel_id in self._seen_relationships:
                return None
            self._seen_relationships.add(rel_id)

        start, end = relationship_endpoints(relationship)
        rel_type = relationship_type(relationship)
        edge = {
            "from": identity_to_string(start),
            "to": identity_to_string(end),
            "label": rel_type,
            "title": rel_type,
            "properties": self.projector.project(entity_properties(relationship)),
        }
        self._edges.append(edge)
        return edge

    def payload(self) -> Dict[str, List[Dict[str, Any]]]:
        return {"nodes": list(self._nodes.values()), "edges": list(self._edges)}


def build_graph_projection(
    rows: Iterable[Any],
    settings: Optional[ProjectionSettings] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    return GraphProjectionBuilder(settings=settings).build(rows)
