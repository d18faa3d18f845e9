"""
Row projection: shapes a raw query row into a plain, serializable mapping.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from neo4j.graph import Node, Path, Relationship

from ..config.models import ProjectionSettings
from .temporal import TemporalNormalizer, looks_temporal
from .values import ValueCoercer


class RecordProjector(ValueCoercer):
    """
    Apply field-name dispatch to every field of a row.

    Allow-listed timestamp fields go through :class:`TemporalNormalizer`, all
    other values through plain coercion. The decision is re-made with the
    local key at every nesting level, so ``{"events": [{"timestamp": ...}]}``
    still has its inner timestamps normalized.
    """

    def project(self, row: Any) -> Dict[str, Any]:
        if row is None:
            return {}
        if not isinstance(row, Mapping) and hasattr(row, "items"):
            row = dict(row.items())
        return self._walk_mapping(row, 0)

    def project_many(self, rows: Iterable[Any]) -> List[Dict[str, Any]]:
        return [self.project(row) for row in rows or []]

    def _coerce_field(self, key: str, value: Any, depth: int) -> Any:
        if self.settings.is_timestamp_field(key) and self._is_timestamp_candidate(value):
            return self.temporal.normalize(key, value)
        return self._walk(value, depth)

    @staticmethod
    def _is_timestamp_candidate(value: Any) -> bool:
        if isinstance(value, (list, tuple, set, frozenset, Node, Relationship, Path)):
            return False
        if isinstance(value, Mapping):
            return looks_temporal(value)
        return True


def project_row(row: Any, settings: Optional[ProjectionSettings] = None) -> Dict[str, Any]:
    """Project a single row with the given (or default) settings."""
    settings = settings or ProjectionSettings()
    return RecordProjector(settings, TemporalNormalizer(settings)).project(row)
