"""Content projector package (content cards + permissions)."""

from .config import ProjectorConfigError, ProjectorProfile
from .projector import ContentProjector
from .store import ProjectionStore, ProjectionStoreError, ProjectionWriteError
from .writer import ContentCardRecord, PermissionRecord, ProjectionWriter

__all__ = [
    "ContentCardRecord",
    "ContentProjector",
    "PermissionRecord",
    "ProjectionStore",
    "ProjectionStoreError",
    "ProjectionWriteError",
    "ProjectionWriter",
    "ProjectorConfigError",
    "ProjectorProfile",
]
