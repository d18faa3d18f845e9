"""
Coercion of raw Neo4j values into JSON-ready Python values.
"""

from __future__ import annotations

import logging
import numbers
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from neo4j.graph import Node, Relationship

from ..config.models import ProjectionSettings
from .entities import (
    entity_identity,
    entity_labels,
    entity_properties,
    identity_to_string,
    is_path,
    relationship_endpoints,
    relationship_type,
)
from .temporal import TemporalNormalizer, is_temporal_native

logger = logging.getLogger(__name__)

# Largest integer a JavaScript client can hold without losing precision.
MAX_SAFE_INTEGER = 2**53 - 1
MAX_DEPTH_PLACEHOLDER = "[Max Depth Exceeded]"


class ValueCoercer:
    """
    Convert store-native values into ``None/bool/int/float/str/list/dict``.

    Coercion is total: anything unrecognised passes through untouched and
    nesting beyond ``settings.max_depth`` is replaced by a placeholder instead
    of recursing further.
    """

    def __init__(
        self,
        settings: Optional[ProjectionSettings] = None,
        temporal: Optional[TemporalNormalizer] = None,
    ):
        self.settings = settings or ProjectionSettings()
        self.temporal = temporal or TemporalNormalizer(self.settings)

    def coerce(self, raw: Any) -> Any:
        return self._walk(raw, 0)

    # ------------------------------------------------------------------
    # Internal helpers

    def _coerce_field(self, key: str, value: Any, depth: int) -> Any:
        return self._walk(value, depth)

    def _walk(self, value: Any, depth: int) -> Any:
        if value is None or isinstance(value, (bool, str, float)):
            return value
        if isinstance(value, numbers.Integral):
            return self._coerce_int(int(value))
        if isinstance(value, Decimal):
            return float(value)
        if depth > self.settings.max_depth:
            logger.warning("[PROJECTION] Nesting deeper than %s levels truncated", self.settings.max_depth)
            return MAX_DEPTH_PLACEHOLDER
        if is_temporal_native(value):
            return self.temporal.normalize(None, value)
        if isinstance(value, Node):
            return self._node_to_dict(value, depth)
        if isinstance(value, Relationship):
            return self._relationship_to_dict(value, depth)
        if is_path(value):
            return {
                "nodes": [self._node_to_dict(node, depth + 1) for node in value.nodes],
                "relationships": [self._relationship_to_dict(rel, depth + 1) for rel in value.relationships],
            }
        if isinstance(value, Mapping):
            return self._walk_mapping(value, depth)
        if isinstance(value, (list, tuple)):
            return [self._walk(item, depth + 1) for item in value]
        if isinstance(value, (set, frozenset)):
            return [self._walk(item, depth + 1) for item in self._ordered(value)]
        return value

    def _walk_mapping(self, value: Mapping, depth: int) -> Dict[str, Any]:
        return {str(key): self._coerce_field(str(key), item, depth + 1) for key, item in value.items()}

    def _coerce_int(self, value: int) -> Any:
        if self.settings.stringify_unsafe_integers and abs(value) > MAX_SAFE_INTEGER:
            return str(value)
        return value

    def _node_to_dict(self, node: Any, depth: int) -> Dict[str, Any]:
        return {
            "identity": identity_to_string(entity_identity(node)),
            "labels": entity_labels(node),
            "properties": self._walk_mapping(entity_properties(node), depth + 1),
        }

    def _relationship_to_dict(self, relationship: Any, depth: int) -> Dict[str, Any]:
        start, end = relationship_endpoints(relationship)
        return {
            "identity": identity_to_string(entity_identity(relationship)),
            "type": relationship_type(relationship),
            "start": identity_to_string(start),
            "end": identity_to_string(end),
            "properties": self._walk_mapping(entity_properties(relationship), depth + 1),
        }

    @staticmethod
    def _ordered(values: Any) -> List[Any]:
        try:
            return sorted(values)
        except TypeError:
            return list(values)


def coerce_value(raw: Any, settings: Optional[ProjectionSettings] = None) -> Any:
    return ValueCoercer(settings).coerce(raw)
