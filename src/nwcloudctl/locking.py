"""Advisory file locks serialising toggle commands per project."""
from __future__ import annotations

import fcntl
import hashlib
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

_POLL_INTERVAL = 0.05


class LockError(RuntimeError):
    """Raised when a lock file cannot be created or opened."""


class LockTimeoutError(LockError):
    """Raised when a lock cannot be acquired before the timeout expires."""


@dataclass(frozen=True, slots=True)
class LockHandle:
    """Details about an acquired lock."""

    path: Path
    wait_ms: int


@dataclass(slots=True)
class LockManager:
    """Hand out exclusive locks stored under *runtime_dir*."""

    runtime_dir: Path
    default_timeout: float = 30.0

    def lock_path(self, project_root: Path) -> Path:
        """Return the lock file used for *project_root*."""
        resolved = str(project_root.expanduser().resolve())
        digest = hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]
        return self.runtime_dir / f"project-{digest}.lock"

    @contextmanager
    def project_lock(self, project_root: Path, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the exclusive lock for *project_root* for the duration of the block."""
        path = self.lock_path(project_root)
        limit = self.default_timeout if timeout is None else timeout
        started = time.monotonic()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o640)
        except OSError as exc:
            raise LockError(f"Cannot open lock file {path}: {exc}") from exc
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError as exc:
                    if time.monotonic() - started >= limit:
                        raise LockTimeoutError(
                            f"Timed out after {limit:.1f}s waiting for lock {path}."
                        ) from exc
                    time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            try:
                self._write_metadata(fd, path, project_root)
            except OSError as exc:
                fcntl.flock(fd, fcntl.LOCK_UN)
                raise LockError(f"Cannot write lock metadata to {path}: {exc}") from exc
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _write_metadata(self, fd: int, path: Path, project_root: Path) -> None:
        payload = {
            "pid": os.getpid(),
            "path": str(path),
            "project": str(project_root),
            "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
        }
        data = json.dumps(payload).encode("utf-8")
        os.ftruncate(fd, 0)
        os.lseek(fd, 0, os.SEEK_SET)
        os.write(fd, data)


__all__ = ["LockError", "LockHandle", "LockManager", "LockTimeoutError"]
