"""
Accessors for node / relationship references.

Rows coming straight from the driver carry ``neo4j.graph.Node`` and
``neo4j.graph.Relationship`` objects; fixtures and pre-shaped payloads use
plain maps (``{"identity", "labels", "properties"}`` for nodes and
``{"identity", "type", "start", "end", "properties"}`` for relationships).
These helpers read both shapes so the projection code never has to care.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from neo4j.graph import Node, Path, Relationship

_IDENTITY_KEYS = ("identity", "elementId", "element_id", "id")


def is_node_ref(value: Any) -> bool:
    if isinstance(value, Node):
        return True
    return isinstance(value, Mapping) and "labels" in value and "properties" in value


def is_relationship_ref(value: Any) -> bool:
    if isinstance(value, Relationship):
        return True
    return (
        isinstance(value, Mapping)
        and "type" in value
        and "properties" in value
        and ("start" in value or "end" in value)
    )


def is_path(value: Any) -> bool:
    return isinstance(value, Path)


def entity_identity(entity: Any) -> Optional[Any]:
    if entity is None:
        return None
    if isinstance(entity, (Node, Relationship)):
        element_id = getattr(entity, "element_id", None)
        if element_id:
            return element_id
        return getattr(entity, "id", None)
    if isinstance(entity, Mapping):
        for key in _IDENTITY_KEYS:
            if entity.get(key) is not None:
                return entity[key]
        return None
    return entity


def identity_to_string(identity: Any) -> Optional[str]:
    if identity is None:
        return None
    return str(identity)


def entity_labels(entity: Any) -> List[str]:
    if entity is None:
        return []
    if isinstance(entity, Node):
        labels = entity.labels
    elif isinstance(entity, Mapping):
        labels = entity.get("labels")
    else:
        labels = getattr(entity, "labels", None)
    if not labels:
        return []
    if isinstance(labels, (set, frozenset)):
        return sorted(str(label) for label in labels)
    if isinstance(labels, str):
        return [labels]
    return [str(label) for label in labels]


def entity_properties(entity: Any) -> Dict[str, Any]:
    if entity is None:
        return {}
    if isinstance(entity, (Node, Relationship)):
        return dict(entity.items())
    if isinstance(entity, Mapping):
        return dict(entity.get("properties") or {})
    return {}


def relationship_type(relationship: Any) -> str:
    if isinstance(relationship, Relationship):
        return str(relationship.type)
    if isinstance(relationship, Mapping):
        return str(relationship.get("type") or "RELATED")
    return str(getattr(relationship, "type", None) or "RELATED")


def relationship_endpoints(relationship: Any) -> Tuple[Optional[Any], Optional[Any]]:
    """Return the (start, end) identities recorded on the relationship itself."""
    if isinstance(relationship, Relationship):
        return entity_identity(relationship.start_node), entity_identity(relationship.end_node)
    if isinstance(relationship, Mapping):
        start = relationship.get("start")
        end = relationship.get("end")
        if isinstance(start, (Node, Mapping)):
            start = entity_identity(start)
        if isinstance(end, (Node, Mapping)):
            end = entity_identity(end)
        return start, end
    return None, None
