"""Tests for project layout resolution."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

from nwcloudctl.project import ProjectArea, ProjectLocator


def test_primary_descriptor_none_for_non_maven_tree(tmp_path: Path) -> None:
    """Directories without pom.xml have no build descriptor."""
    locator = ProjectLocator(tmp_path)

    assert locator.descriptor_paths() == []
    assert locator.primary_descriptor_path() is None


def test_primary_descriptor_prefers_root(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """The root descriptor wins and multiple descriptors are reported."""
    (tmp_path / "pom.xml").write_text("<project/>", encoding="utf-8")
    (tmp_path / "module").mkdir()
    (tmp_path / "module" / "pom.xml").write_text("<project/>", encoding="utf-8")
    locator = ProjectLocator(tmp_path)

    with caplog.at_level(logging.WARNING, logger="nwcloudctl.project"):
        primary = locator.primary_descriptor_path()

    assert primary == tmp_path / "pom.xml"
    assert "Found 2 build descriptors" in caplog.text


def test_primary_descriptor_falls_back_to_module(tmp_path: Path) -> None:
    """A descriptor one level below the root is found."""
    (tmp_path / "webapp").mkdir()
    (tmp_path / "webapp" / "pom.xml").write_text("<project/>", encoding="utf-8")

    assert ProjectLocator(tmp_path).primary_descriptor_path() == tmp_path / "webapp" / "pom.xml"


def test_resolve_maps_areas(tmp_path: Path) -> None:
    """Project areas resolve below the root."""
    locator = ProjectLocator(tmp_path)

    assert locator.resolve(ProjectArea.ROOT) == tmp_path
    assert locator.resolve(ProjectArea.SRC_MAIN_WEBAPP, "WEB-INF/web.xml") == tmp_path / "src/main/webapp/WEB-INF/web.xml"
    assert (
        locator.resolve(ProjectArea.SPRING_CONFIG_ROOT, "applicationContext.xml")
        == tmp_path / "src/main/resources/META-INF/spring/applicationContext.xml"
    )
