"""Per-file backups taken before a descriptor is modified.

A backup lives next to its source as ``<path>.pre.nwcloud``. Its existence is
the only record that an enable command has touched the file and that the
matching disable command has not yet reverted it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import BackupAlreadyExists, BackupMissing, NotFound
from .filestore import FileStore

LOGGER = logging.getLogger(__name__)

BACKUP_SUFFIX = ".pre.nwcloud"


class BackupPolicy(str, Enum):
    """What :meth:`BackupStore.backup` does when a backup already exists."""

    SKIP = "skip"
    FAIL = "fail"
    OVERWRITE = "overwrite"


def backup_path(path: Path) -> Path:
    """Return the backup location for *path*."""
    return path.with_name(f"{path.name}{BACKUP_SUFFIX}")


@dataclass(slots=True)
class BackupStore:
    """Create and restore file backups through a :class:`FileStore`."""

    files: FileStore
    policy: BackupPolicy = BackupPolicy.SKIP

    def backup_path(self, path: Path) -> Path:
        """Return the backup location for *path*."""
        return backup_path(path)

    def has_backup(self, path: Path) -> bool:
        """Return True when a backup of *path* exists."""
        return self.files.exists(self.backup_path(path))

    def backup(self, path: Path, description: str = "Backup") -> bool:
        """Copy *path* to its backup location.

        Returns ``False`` when an existing backup was kept under
        :attr:`BackupPolicy.SKIP`.
        """
        if not self.files.exists(path):
            raise NotFound(f"Cannot back up missing file: {path}")
        target = self.backup_path(path)
        if self.files.exists(target):
            if self.policy is BackupPolicy.FAIL:
                raise BackupAlreadyExists(
                    f"Backup {target} already exists; run the matching disable command first."
                )
            if self.policy is BackupPolicy.SKIP:
                LOGGER.warning("Keeping existing backup %s; original content preserved.", target)
                return False
        self.files.copy(path, target, description or "Backup")
        return True

    def revert(self, path: Path, description: str = "Revert backup") -> None:
        """Restore *path* from its backup and delete the backup."""
        source = self.backup_path(path)
        if not self.files.exists(source):
            raise BackupMissing(f"No backup to revert for {path} (expected {source}).")
        description = description or "Revert backup"
        self.files.copy(source, path, description)
        self.files.delete(source, description)


__all__ = ["BACKUP_SUFFIX", "BackupPolicy", "BackupStore", "backup_path"]
