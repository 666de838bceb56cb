"""Workspace manager - disposable per-request project directories.

Every workspace lives directly below a single configured temp root:

    <temp_root>/<sanitized-name>-<unix-ms>-<16 hex chars>/
        Cargo.toml
        src/lib.rs

The manager refuses to delete anything that is not strictly inside the temp
root, treats cleanup of a missing directory as success and tracks live
workspaces in a WorkspaceRegistry so they can be force-cleaned at shutdown.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import re
import secrets
import shutil
import tempfile
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import Any, Callable

from ..build.policy import MANIFEST_FILE, SOURCE_DIR, SOURCE_FILE, BuildPolicy
from .registry import WorkspaceRegistry
from .sanitize import DEFAULT_NAME, sanitize_name

logger = logging.getLogger(__name__)

SUFFIX_BYTES: int = 8

# <name>-<unix ms>-<hex suffix>
WORKSPACE_DIR_PATTERN = re.compile(
    rf"^[A-Za-z0-9._-]+-\d{{13,}}-[0-9a-f]{{{SUFFIX_BYTES * 2}}}$"
)


class WorkspaceError(RuntimeError):
    """Base class for workspace failures."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"error": str(self), "kind": type(self).__name__}
        if self.path:
            result["path"] = self.path
        return result


class WorkspaceCreationError(WorkspaceError):
    """Workspace directory or files could not be created."""


class WorkspaceCleanupError(WorkspaceError):
    """Workspace directory could not be removed."""


class WorkspaceContainmentError(WorkspaceError, ValueError):
    """Target path is not inside the configured temp root."""


@dataclass
class Workspace:
    """A disposable project directory holding one build attempt.

    Use as a context manager so the directory is released on every exit
    path:

        with manager.create_workspace(source) as workspace:
            ...

    Coroutines use ``async with`` instead, which removes the directory in a
    worker thread:

        async with await manager.acreate_workspace(source) as workspace:
            ...
    """

    root_path: Path
    source_file_path: Path
    manifest_path: Path
    _release: Callable[[str], None] = field(repr=False, compare=False)
    _released: bool = field(default=False, repr=False, compare=False)

    @property
    def released(self) -> bool:
        """Whether release() has run."""
        return self._released

    def release(self) -> None:
        """Delete the workspace directory. Later calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._release(str(self.root_path))

    def __enter__(self) -> Workspace:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is None:
            self.release()
            return
        # Keep the original exception; a cleanup failure is only logged
        try:
            self.release()
        except WorkspaceError:
            logger.exception(f"Cleanup failed for {self.root_path}")

    async def arelease(self) -> None:
        """Release from a coroutine without blocking the event loop."""
        if self._released:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.release)

    async def __aenter__(self) -> Workspace:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is None:
            await self.arelease()
            return
        try:
            await self.arelease()
        except WorkspaceError:
            logger.exception(f"Cleanup failed for {self.root_path}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "rootPath": str(self.root_path),
            "sourceFilePath": str(self.source_file_path),
            "manifestPath": str(self.manifest_path),
            "released": self._released,
        }


class WorkspaceManager:
    """Create, track and destroy workspaces under one temp root.

    Usage:
        manager = WorkspaceManager("/tmp/soroban-sandbox")
        with manager.create_workspace(code, base_name="hello") as ws:
            ...
        manager.cleanup_all()  # at shutdown
    """

    def __init__(
        self,
        temp_root: str | Path | None = None,
        registry: WorkspaceRegistry | None = None,
        policy: BuildPolicy | None = None,
    ):
        """Initialize manager.

        Args:
            temp_root: Directory holding all workspaces (OS temp dir if None)
            registry: Live workspace registry (created if not provided)
            policy: Build policy used to render the manifest
        """
        root = Path(temp_root) if temp_root else Path(tempfile.gettempdir())
        root.mkdir(parents=True, exist_ok=True)
        self._temp_root = root.resolve()
        self._registry = registry if registry is not None else WorkspaceRegistry()
        self._policy = policy or BuildPolicy()

    @property
    def temp_root(self) -> Path:
        """Canonical temp root."""
        return self._temp_root

    @property
    def registry(self) -> WorkspaceRegistry:
        """Live workspace registry."""
        return self._registry

    def live_workspaces(self) -> list[str]:
        """Paths of workspaces that have not been cleaned up yet."""
        return self._registry.snapshot()

    def _unique_dir_name(self, base_name: str | None) -> str:
        """Compose ``<name>-<unix ms>-<random hex>``."""
        name = sanitize_name(base_name, fallback=DEFAULT_NAME)
        return f"{name}-{int(time.time() * 1000)}-{secrets.token_hex(SUFFIX_BYTES)}"

    def create_workspace(
        self,
        source: str,
        base_name: str | None = None,
        dependencies: Mapping[str, str] | None = None,
    ) -> Workspace:
        """Create and populate a new workspace.

        Args:
            source: Contract source written verbatim to src/lib.rs
            base_name: Caller-supplied name, sanitized before use
            dependencies: Extra crate dependencies for Cargo.toml

        Returns:
            Registered workspace bound to cleanup()

        Raises:
            ValueError: If dependencies are rejected by the build policy
            WorkspaceCreationError: If the directory or files cannot be created
        """
        # Render first so invalid input never touches the filesystem
        manifest = self._policy.render_manifest(dependencies)

        root = self._temp_root / self._unique_dir_name(base_name)
        source_dir = root / SOURCE_DIR
        source_file = source_dir / SOURCE_FILE
        manifest_path = root / MANIFEST_FILE

        try:
            root.mkdir(mode=0o700)
        except OSError as e:
            raise WorkspaceCreationError(
                f"Setup failed: cannot create {root}: {e}", path=str(root)
            ) from e

        try:
            source_dir.mkdir()
            manifest_path.write_text(manifest, encoding="utf-8")
            source_file.write_text(source, encoding="utf-8")
        except OSError as e:
            try:
                self._remove_tree(root)
            except OSError:
                logger.exception(f"Failed to remove partial workspace {root}")
            raise WorkspaceCreationError(
                f"Setup failed: cannot populate {root}: {e}", path=str(root)
            ) from e

        self._registry.add(str(root))
        logger.info(f"Workspace created: {root}")

        return Workspace(
            root_path=root,
            source_file_path=source_file,
            manifest_path=manifest_path,
            _release=self.cleanup,
        )

    async def acreate_workspace(
        self,
        source: str,
        base_name: str | None = None,
        dependencies: Mapping[str, str] | None = None,
    ) -> Workspace:
        """Run create_workspace() in a worker thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(
                self.create_workspace, source, base_name=base_name, dependencies=dependencies
            ),
        )

    def _contained_path(self, path: str | os.PathLike[str] | None) -> Path:
        """Validate that path is strictly inside the temp root.

        Raises:
            WorkspaceContainmentError: If path is empty, the root itself or outside it
        """
        if path is None or str(path).strip() == "":
            raise WorkspaceContainmentError("Refusing to clean directory: empty path")

        candidate = Path(os.path.abspath(path))
        # Resolve the parent only, so a symlinked workspace is removed as a link
        # and never followed out of the root
        try:
            canonical = candidate.parent.resolve() / candidate.name
        except (OSError, RuntimeError) as e:
            raise WorkspaceContainmentError(
                f"Refusing to clean directory outside temp folder: {path}", path=str(path)
            ) from e

        root = str(self._temp_root)
        try:
            inside = os.path.commonpath([str(canonical), root]) == root
        except ValueError:
            inside = False
        if not inside or canonical == self._temp_root or candidate.name in ("", ".", ".."):
            raise WorkspaceContainmentError(
                f"Refusing to clean directory outside temp folder: {path}", path=str(path)
            )
        return canonical

    def _remove_tree(self, path: Path) -> None:
        if path.is_symlink():
            path.unlink()
        else:
            shutil.rmtree(path)

    def cleanup(self, path: str | os.PathLike[str] | None) -> None:
        """Remove a workspace directory.

        Missing directories are a successful no-op. The path is always
        removed from the live registry.

        Raises:
            WorkspaceContainmentError: If path is not inside the temp root
            WorkspaceCleanupError: If removal fails
        """
        canonical = self._contained_path(path)
        key = str(canonical)

        try:
            if not os.path.lexists(canonical):
                logger.debug(f"Workspace already gone: {canonical}")
                return
            self._remove_tree(canonical)
            logger.info(f"Workspace cleaned: {canonical}")
        except FileNotFoundError:
            logger.debug(f"Workspace vanished during cleanup: {canonical}")
        except OSError as e:
            raise WorkspaceCleanupError(
                f"Cleanup failed: {canonical}: {e}", path=key
            ) from e
        finally:
            self._registry.discard(key)
            if str(path) != key:
                self._registry.discard(str(path))

    def cleanup_all(self) -> int:
        """Best-effort removal of every live workspace.

        Individual failures are logged and skipped. Only paths present when
        the sweep starts are touched; workspaces registered meanwhile stay
        registered.

        Returns:
            Number of workspaces cleaned
        """
        cleaned = 0
        for path in self._registry.snapshot():
            try:
                self.cleanup(path)
                cleaned += 1
            except WorkspaceError as e:
                logger.warning(f"Failed to clean workspace {path}: {e}")
                self._registry.discard(path)
        if cleaned:
            logger.info(f"Cleaned {cleaned} live workspaces")
        return cleaned

    def sweep_stale(self, max_age: float = 3600.0) -> int:
        """Remove abandoned workspaces left in the temp root.

        Only directories matching the workspace naming pattern and older
        than ``max_age`` seconds are touched; live workspaces are skipped.

        Args:
            max_age: Minimum age in seconds

        Returns:
            Number of directories removed
        """
        removed = 0
        cutoff = time.time() - max_age
        live = set(self._registry.snapshot())

        try:
            entries = list(os.scandir(self._temp_root))
        except OSError as e:
            logger.warning(f"Cannot scan temp root {self._temp_root}: {e}")
            return 0

        for entry in entries:
            if not WORKSPACE_DIR_PATTERN.match(entry.name) or entry.path in live:
                continue
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                if entry.stat(follow_symlinks=False).st_mtime > cutoff:
                    continue
                self.cleanup(entry.path)
                removed += 1
            except (OSError, WorkspaceError) as e:
                logger.warning(f"Failed to sweep {entry.path}: {e}")

        if removed:
            logger.info(f"Swept {removed} stale workspaces from {self._temp_root}")
        return removed
