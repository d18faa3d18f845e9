from .models import (
    DEFAULT_KNOWLEDGEBASE_TYPES,
    DEFAULT_TIMESTAMP_FIELDS,
    DashboardSettings,
    ProjectionSettings,
)

__all__ = [
    "DEFAULT_KNOWLEDGEBASE_TYPES",
    "DEFAULT_TIMESTAMP_FIELDS",
    "DashboardSettings",
    "ProjectionSettings",
]
