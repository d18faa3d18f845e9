"""
Graph module - Neo4j access, value projection and dashboard reports.
"""

from .schema import NodeLabels, RelationshipTypes
from .service import GraphService, GraphQueryError, GraphUnavailableError
from .values import ValueCoercer, coerce_value
from .temporal import TemporalNormalizer, normalize_temporal
from .projection import RecordProjector, project_row
from .visual import GraphProjectionBuilder, build_graph_projection
from .filters import (
    CompiledQuery,
    DateRange,
    FilterSpec,
    InvalidFilterError,
    LeadQuerySchema,
    QueryFilterCompiler,
    compile_filter_query,
)
from .dashboard_service import LeadDashboardService

__all__ = [
    "GraphService",
    "GraphQueryError",
    "GraphUnavailableError",
    "LeadDashboardService",
    "ValueCoercer",
    "TemporalNormalizer",
    "RecordProjector",
    "GraphProjectionBuilder",
    "QueryFilterCompiler",
    "CompiledQuery",
    "DateRange",
    "FilterSpec",
    "InvalidFilterError",
    "LeadQuerySchema",
    "NodeLabels",
    "RelationshipTypes",
    "coerce_value",
    "normalize_temporal",
    "project_row",
    "build_graph_projection",
    "compile_filter_query",
]
