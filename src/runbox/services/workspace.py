from __future__ import annotations
import contextlib
import shutil
import tempfile
from pathlib import Path
from typing import Iterator, Optional

import structlog

logger = structlog.get_logger(__name__)

WORKSPACE_PREFIX = "runbox-job-"


class WorkspaceManager:
    """
    Ephemeral per-run directories under one scratch root:
      <scratch_root>/runbox-job-XXXXXXXX/
        ├─ <source file>   (main.cpp, main.py, Main.java...)
        └─ <artifact>      (compiled binary / classes, if any)
    """

    def __init__(self, scratch_root: Optional[Path] = None):
        root = scratch_root or Path(tempfile.gettempdir())
        # always an absolute path
        self.scratch_root = root if root.is_absolute() else root.resolve()
        self.scratch_root.mkdir(parents=True, exist_ok=True)

    def acquire(self) -> Path:
        # mkdtemp picks a fresh random name and fails rather than reuse one
        path = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self.scratch_root))
        logger.debug("workspace_acquired", workspace=str(path))
        return path

    def release(self, path: Path) -> bool:
        """
        Remove the workspace and everything in it.

        Best-effort: returns False and logs a warning when removal fails.
        """
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning("workspace_cleanup_failed", workspace=str(path), error=str(e))
            return False
        logger.debug("workspace_released", workspace=str(path))
        return True

    @contextlib.contextmanager
    def workspace(self) -> Iterator[Path]:
        path = self.acquire()
        try:
            yield path
        finally:
            self.release(path)

    def list_workspaces(self) -> list[Path]:
        return sorted(self.scratch_root.glob(f"{WORKSPACE_PREFIX}*"))
