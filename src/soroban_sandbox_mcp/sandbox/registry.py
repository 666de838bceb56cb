"""Registry of live workspace directories.

Owned by a WorkspaceManager and shared by every request it serves, so all
operations are guarded by a lock.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator


class WorkspaceRegistry:
    """Thread-safe set of live workspace root paths.

    Entries are added when a workspace is created and removed when it is
    cleaned up (including no-op cleanups of already missing directories).
    """

    def __init__(self) -> None:
        self._paths: set[str] = set()
        self._lock = threading.Lock()

    def add(self, path: str) -> None:
        """Register a live workspace path."""
        with self._lock:
            self._paths.add(path)

    def discard(self, path: str) -> bool:
        """Remove a path if registered.

        Returns:
            True if the path was registered
        """
        with self._lock:
            if path in self._paths:
                self._paths.remove(path)
                return True
            return False

    def snapshot(self) -> list[str]:
        """Return a sorted copy of the live paths."""
        with self._lock:
            return sorted(self._paths)

    def clear(self) -> None:
        """Forget every registered path."""
        with self._lock:
            self._paths.clear()

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
