"""Scratch-file allocation with scoped cleanup.

Every intermediate file an operation creates (downloads, normalized
copies, concat lists) is allocated through a ``ScratchScope``.  Leaving
the ``with`` block deletes every path the scope handed out, including on
error or cancellation.

Names come from ``uuid4`` tokens only, never from request content, so
concurrent operations cannot collide and a hostile URL cannot steer a
write outside the scratch directory.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)


class ScratchSpace:
    """Allocates unique paths under a managed directory."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def allocate(self, suffix: str = "") -> Path:
        """Return a fresh, not yet existing path under the scratch root."""
        self.ensure_root()
        while True:
            path = self.root / f"{uuid.uuid4().hex}{suffix}"
            if not path.exists():
                return path

    def release(self, path: Path) -> None:
        """Delete *path* if present.  Failures are logged, never raised."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete scratch file %s: %s", path, exc)

    def scope(self) -> ScratchScope:
        return ScratchScope(self)

    def sweep(self) -> int:
        """Remove files left behind by a previous process.  Returns the count."""
        if not self.root.exists():
            return 0
        removed = 0
        for leftover in self.root.iterdir():
            if leftover.is_file():
                self.release(leftover)
                removed += 1
        if removed:
            logger.info("Swept %d orphaned scratch file(s) from %s", removed, self.root)
        return removed


class ScratchScope:
    """Owns the paths allocated for one in-flight operation."""

    def __init__(self, space: ScratchSpace) -> None:
        self._space = space
        self._owned: list[Path] = []

    @property
    def owned(self) -> tuple[Path, ...]:
        return tuple(self._owned)

    def allocate(self, suffix: str = "") -> Path:
        path = self._space.allocate(suffix)
        self._owned.append(path)
        return path

    def keep(self, path: Path) -> Path:
        """Hand *path* over to the caller; it survives the scope exit."""
        self._owned.remove(path)
        return path

    def release(self, path: Path) -> None:
        """Release one path early, e.g. an input no longer needed."""
        if path in self._owned:
            self._owned.remove(path)
        self._space.release(path)

    def close(self) -> None:
        while self._owned:
            self._space.release(self._owned.pop())

    def __enter__(self) -> ScratchScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
