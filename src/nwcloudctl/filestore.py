"""Filesystem access used by every toggle command.

All writes go through a temporary sibling file followed by ``os.replace`` so
that a failure part-way through leaves the previous content of that one file
untouched. There is deliberately no transaction spanning several files.
"""
from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .errors import IoFailure, NotFound


@dataclass(frozen=True, slots=True)
class FileChange:
    """A single effective change applied to the project tree."""

    action: str
    path: Path
    description: str = ""

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "action": self.action,
            "path": str(self.path),
            "description": self.description,
        }


@dataclass(slots=True)
class FileStore:
    """Read and mutate project files, recording each change applied."""

    changes: list[FileChange] = field(default_factory=list)

    def exists(self, path: Path) -> bool:
        """Return True when *path* is an existing regular file."""
        return path.is_file()

    def read_bytes(self, path: Path) -> bytes:
        """Return the content of *path*."""
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFound(f"Required file not found: {path}") from exc
        except OSError as exc:
            raise IoFailure(f"Failed to read {path}: {exc}") from exc

    def write_text(self, path: Path, content: str, description: str = "") -> bool:
        """Create or update *path* with *content*.

        Returns ``False`` without touching the file when it already holds
        exactly *content*.
        """
        data = content.encode("utf-8")
        existed = path.exists()
        if existed and self.read_bytes(path) == data:
            return False
        self._atomic_write(path, data)
        self._record("updated" if existed else "created", path, description)
        return True

    def copy(self, source: Path, target: Path, description: str = "") -> None:
        """Copy the bytes of *source* onto *target*."""
        if not self.exists(source):
            raise NotFound(f"Cannot copy missing file: {source}")
        existed = target.exists()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_name = tempfile.mkstemp(
                dir=str(target.parent),
                prefix=f".{target.name}.",
            )
            os.close(tmp_fd)
            tmp_path = Path(tmp_name)
            try:
                shutil.copy2(source, tmp_path)
                os.replace(tmp_path, target)
            finally:
                tmp_path.unlink(missing_ok=True)
        except OSError as exc:
            raise IoFailure(f"Failed to copy {source} to {target}: {exc}") from exc
        self._record("updated" if existed else "created", target, description)

    def delete(self, path: Path, description: str = "") -> None:
        """Delete *path*."""
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise NotFound(f"Cannot delete missing file: {path}") from exc
        except OSError as exc:
            raise IoFailure(f"Failed to delete {path}: {exc}") from exc
        self._record("deleted", path, description)

    # ------------------------------------------------------------------
    def _atomic_write(self, path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
            tmp_path = Path(tmp_name)
            try:
                with os.fdopen(tmp_fd, "wb") as handle:
                    handle.write(data)
                if path.exists():
                    shutil.copymode(path, tmp_path)
                os.replace(tmp_path, path)
            finally:
                tmp_path.unlink(missing_ok=True)
        except OSError as exc:
            raise IoFailure(f"Failed to write {path}: {exc}") from exc

    def _record(self, action: str, path: Path, description: str) -> None:
        self.changes.append(FileChange(action=action, path=path, description=description))


__all__ = ["FileChange", "FileStore"]
