from .core import WorkspaceProvider, detect_event
from .models import Workspace

from .exceptions import (
    WorkspaceError,
    WorkspaceCloneError,
    WorkspaceLocalPathError,
    EventDetectionError,
)

__all__ = [
    "Workspace",
    "WorkspaceProvider",
    "detect_event",
    "WorkspaceError",
    "WorkspaceCloneError",
    "WorkspaceLocalPathError",
    "EventDetectionError",
]
