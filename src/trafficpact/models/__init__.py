"""trafficpact data models - re-exports all public model classes."""

from trafficpact.models.config import ProjectConfig, RecordingConfig
from trafficpact.models.security import (
    ApiKeyPlacement,
    HttpScheme,
    SecurityScheme,
    SecurityType,
    SecurityValues,
)

__all__ = [
    "ApiKeyPlacement",
    "HttpScheme",
    "ProjectConfig",
    "RecordingConfig",
    "SecurityScheme",
    "SecurityType",
    "SecurityValues",
]
