"""Tests for the per-file backup store."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from nwcloudctl.availability import PROPERTIES_FILE, Capability, can_disable
from nwcloudctl.backups import BACKUP_SUFFIX, BackupPolicy, BackupStore, backup_path
from nwcloudctl.errors import BackupAlreadyExists, BackupMissing, NotFound
from nwcloudctl.filestore import FileStore
from nwcloudctl.project import ProjectLocator


def _source(tmp_path: Path, content: bytes = b"<project/>\n") -> Path:
    path = tmp_path / "pom.xml"
    path.write_bytes(content)
    return path


def test_backup_path_appends_suffix(tmp_path: Path) -> None:
    """Backups live next to the source with the fixed suffix."""
    assert BACKUP_SUFFIX == ".pre.nwcloud"
    assert backup_path(tmp_path / "pom.xml") == tmp_path / "pom.xml.pre.nwcloud"


def test_store_and_availability_agree_on_backup_location(tmp_path: Path) -> None:
    """A backup taken by the store is the one the availability gate looks for."""
    (tmp_path / "pom.xml").write_text("<project/>", encoding="utf-8")
    (tmp_path / PROPERTIES_FILE).write_text("nwcloud.host=x\n", encoding="utf-8")
    files = FileStore()
    locator = ProjectLocator(tmp_path)
    assert can_disable(Capability.DEPLOY, locator, files) is False

    BackupStore(files).backup(tmp_path / "pom.xml")

    assert BackupStore(files).backup_path(tmp_path / "pom.xml") == backup_path(tmp_path / "pom.xml")
    assert can_disable(Capability.DEPLOY, locator, files) is True


def test_backup_copies_bytes(tmp_path: Path) -> None:
    """A backup holds the exact bytes of the source."""
    path = _source(tmp_path, b"\xef\xbb\xbf<project>\r\n</project>")
    store = BackupStore(FileStore())

    assert store.backup(path) is True

    assert store.has_backup(path)
    assert store.backup_path(path).read_bytes() == path.read_bytes()


def test_backup_missing_source_raises(tmp_path: Path) -> None:
    """Backing up an absent file raises NotFound."""
    store = BackupStore(FileStore())

    with pytest.raises(NotFound):
        store.backup(tmp_path / "pom.xml")


def test_backup_skip_policy_keeps_first_original(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """The default policy never replaces an existing backup."""
    path = _source(tmp_path, b"original")
    store = BackupStore(FileStore())
    store.backup(path)
    path.write_bytes(b"edited")

    with caplog.at_level(logging.WARNING, logger="nwcloudctl.backups"):
        assert store.backup(path) is False

    assert store.backup_path(path).read_bytes() == b"original"
    assert "Keeping existing backup" in caplog.text


def test_backup_fail_policy_raises(tmp_path: Path) -> None:
    """The fail policy refuses to touch an existing backup."""
    path = _source(tmp_path)
    store = BackupStore(FileStore(), policy=BackupPolicy.FAIL)
    store.backup(path)

    with pytest.raises(BackupAlreadyExists):
        store.backup(path)


def test_backup_overwrite_policy_replaces(tmp_path: Path) -> None:
    """The overwrite policy captures the current content again."""
    path = _source(tmp_path, b"original")
    store = BackupStore(FileStore(), policy=BackupPolicy.OVERWRITE)
    store.backup(path)
    path.write_bytes(b"edited")

    assert store.backup(path) is True
    assert store.backup_path(path).read_bytes() == b"edited"


def test_revert_restores_and_deletes_backup(tmp_path: Path) -> None:
    """Reverting restores the original bytes and removes the backup."""
    path = _source(tmp_path, b"original")
    files = FileStore()
    store = BackupStore(files)
    store.backup(path)
    path.write_bytes(b"edited")

    store.revert(path, "Restoring former config")

    assert path.read_bytes() == b"original"
    assert not store.has_backup(path)
    assert [change.action for change in files.changes] == ["created", "updated", "deleted"]


def test_revert_without_backup_raises(tmp_path: Path) -> None:
    """Reverting a file that has no backup raises BackupMissing."""
    path = _source(tmp_path)

    with pytest.raises(BackupMissing):
        BackupStore(FileStore()).revert(path)
