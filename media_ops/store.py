"""Registry of finished artifacts, keyed by download identifier."""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path

from .errors import NotFoundError
from .models import ProcessedArtifact

logger = logging.getLogger(__name__)

# Identifiers are the file names the store itself generates: <uuid hex>.<ext>
ARTIFACT_ID_RE = re.compile(r"^[0-9a-f]{32}\.[a-z0-9]{1,5}$")


class ResultStore:
    """Maps artifact ids to files under the outputs directory.

    The store never moves, re-encodes or expires a file.  A file is
    registered only after its operation finished successfully, so
    partial outputs are never reachable.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self._artifacts: dict[str, Path] = {}
        self._lock = threading.Lock()

    def load(self) -> int:
        """Re-index artifacts already on disk (e.g. after a restart)."""
        self.root.mkdir(parents=True, exist_ok=True)
        found = 0
        with self._lock:
            for path in self.root.iterdir():
                if path.is_file() and ARTIFACT_ID_RE.match(path.name):
                    self._artifacts[path.name] = path
                    found += 1
        logger.info("Indexed %d existing artifact(s) in %s", found, self.root)
        return found

    def put(self, path: Path) -> ProcessedArtifact:
        if path.parent != self.root or not ARTIFACT_ID_RE.match(path.name):
            raise ValueError(f"{path} was not allocated under {self.root}")
        if not path.is_file():
            raise ValueError(f"Cannot register missing artifact {path}")
        artifact_id = path.name
        with self._lock:
            if artifact_id in self._artifacts:
                raise ValueError(f"Artifact {artifact_id} already registered")
            self._artifacts[artifact_id] = path
        logger.info("Registered artifact %s (%d bytes)", artifact_id, path.stat().st_size)
        return ProcessedArtifact(artifact_id=artifact_id, path=path)

    def publish(self, pending: Path) -> ProcessedArtifact:
        """Move a finished render into the outputs directory and register it.

        *pending* must live on the same filesystem as the outputs
        directory; ``os.replace`` makes the file appear there complete.
        """
        if not ARTIFACT_ID_RE.match(pending.name):
            raise ValueError(f"{pending.name} is not a valid artifact name")
        if not pending.is_file():
            raise ValueError(f"Cannot publish missing render {pending}")
        dest = self.root / pending.name
        if dest.exists():
            raise ValueError(f"Artifact {dest.name} already exists")
        self.root.mkdir(parents=True, exist_ok=True)
        os.replace(pending, dest)
        return self.put(dest)

    def get(self, artifact_id: str) -> ProcessedArtifact:
        with self._lock:
            path = self._artifacts.get(artifact_id)
        if path is None or not path.is_file():
            raise NotFoundError(f"File not found: {artifact_id}")
        return ProcessedArtifact(artifact_id=artifact_id, path=path)
