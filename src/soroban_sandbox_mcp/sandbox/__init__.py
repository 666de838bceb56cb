"""Disposable build workspaces.

Provides:
- Filesystem-safe directory names for caller-supplied project names
- Unique, registered per-request workspaces under one temp root
- Containment-checked, idempotent cleanup and a shutdown sweep
"""

from .registry import WorkspaceRegistry
from .sanitize import MAX_NAME_LENGTH, WINDOWS_RESERVED_NAMES, sanitize_name
from .workspace import (
    Workspace,
    WorkspaceCleanupError,
    WorkspaceContainmentError,
    WorkspaceCreationError,
    WorkspaceError,
    WorkspaceManager,
)

__all__ = [
    "MAX_NAME_LENGTH",
    "WINDOWS_RESERVED_NAMES",
    "sanitize_name",
    "Workspace",
    "WorkspaceManager",
    "WorkspaceRegistry",
    "WorkspaceError",
    "WorkspaceCreationError",
    "WorkspaceCleanupError",
    "WorkspaceContainmentError",
]
