"""
Typed configuration models for the projection layer and dashboard reports.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

DEFAULT_TIMESTAMP_FIELDS: FrozenSet[str] = frozenset(
    {
        "dtCriacao",
        "dtUltimaAtualizacao",
        "createdAt",
        "updatedAt",
        "lastInteraction",
        "timestamp",
        "eventTimestamp",
        "reflectionTimestamp",
        "hypothesisTimestamp",
    }
)

DEFAULT_KNOWLEDGEBASE_TYPES: Tuple[str, ...] = (
    "DorComum",
    "SolucaoOferecida",
    "ObjecaoComum",
    "KnowledgeTopic",
    "SocialProof",
    "Industry",
)

TIMESTAMP_FIELDS_ENV = "GRAPH_TIMESTAMP_FIELDS"


def _clean_names(values: Iterable[Any]) -> FrozenSet[str]:
    return frozenset(str(v).strip() for v in values if v is not None and str(v).strip())


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ProjectionSettings:
    """Knobs for value coercion, temporal normalization and graph projection."""

    timestamp_fields: FrozenSet[str] = DEFAULT_TIMESTAMP_FIELDS
    max_depth: int = 64
    dedupe_edges: bool = False
    stringify_unsafe_integers: bool = False
    title_list_items: int = 3

    def is_timestamp_field(self, name: Optional[str]) -> bool:
        return name is not None and name in self.timestamp_fields

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "ProjectionSettings":
        """
        Build settings from the ``projection`` config section.

        ``GRAPH_TIMESTAMP_FIELDS`` (comma separated) replaces the allow-list
        when set, the same way ``NEO4J_*`` variables override the graph section.
        """
        cfg = dict((config or {}).get("projection", {}) or {})
        fields = DEFAULT_TIMESTAMP_FIELDS
        if cfg.get("timestamp_fields"):
            fields = _clean_names(cfg["timestamp_fields"])
        env_fields = os.getenv(TIMESTAMP_FIELDS_ENV)
        if env_fields:
            fields = _clean_names(env_fields.split(","))
        extra = cfg.get("extra_timestamp_fields")
        if extra:
            fields = fields | _clean_names(extra)

        return cls(
            timestamp_fields=fields,
            max_depth=max(1, _as_int(cfg.get("max_depth"), 64)),
            dedupe_edges=bool(cfg.get("dedupe_edges", False)),
            stringify_unsafe_integers=bool(cfg.get("stringify_unsafe_integers", False)),
            title_list_items=max(0, _as_int(cfg.get("title_list_items"), 3)),
        )


@dataclass(frozen=True)
class DashboardSettings:
    default_page_size: int = 10
    knowledgebase_page_size: int = 20
    graph_node_limit: int = 150
    knowledgebase_types: Tuple[str, ...] = field(default=DEFAULT_KNOWLEDGEBASE_TYPES)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "DashboardSettings":
        cfg = dict((config or {}).get("dashboard", {}) or {})
        types = cfg.get("knowledgebase_types") or DEFAULT_KNOWLEDGEBASE_TYPES
        return cls(
            default_page_size=max(1, _as_int(cfg.get("default_page_size"), 10)),
            knowledgebase_page_size=max(1, _as_int(cfg.get("knowledgebase_page_size"), 20)),
            graph_node_limit=max(1, _as_int(cfg.get("graph_node_limit"), 150)),
            knowledgebase_types=tuple(str(t) for t in types),
        )
