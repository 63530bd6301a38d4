"""Tests for the idempotent XML edit primitives."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest
from lxml import etree

from conftest import POM_XML, SPRING_XML, WEB_XML
from nwcloudctl.errors import MalformedXml
from nwcloudctl.filestore import FileStore
from nwcloudctl.mutator import (
    XmlMutator,
    append_raw,
    insert_if_absent,
    remove_bean_by_id,
    remove_matching,
)
from nwcloudctl.xmltree import XmlDocument, child_text

PLUGINS = "/project/build/plugins"
PLUGIN = "/project/build/plugins/plugin"


def _artifact_ids(document: XmlDocument) -> list[str | None]:
    return [child_text(plugin, "artifactId") for plugin in document.find_all(PLUGIN)]


def _artifact_id(element: etree._Element) -> str:
    return child_text(element, "artifactId") or ""


def _resource_ref(document: XmlDocument) -> etree._Element:
    ref = document.create_element("resource-ref")
    ref.append(document.create_element("res-ref-name", text="jdbc/DefaultDB"))
    return document.append_child(document.root, ref)


def test_remove_matching_removes_every_match() -> None:
    """All matching candidates are removed, not just the first one."""
    document = XmlDocument.parse(POM_XML.encode("utf-8"))
    plugins = document.find_first(PLUGINS)
    assert plugins is not None
    duplicate = etree.fromstring(etree.tostring(document.find_all(PLUGIN)[1]))
    plugins.append(duplicate)

    description = remove_matching(
        document,
        PLUGINS,
        PLUGIN,
        lambda el: child_text(el, "artifactId") == "maven-war-plugin",
        label="build plugin",
        describe=_artifact_id,
    )

    assert description == "Removal of build plugin: maven-war-plugin, maven-war-plugin"
    assert _artifact_ids(document) == ["maven-compiler-plugin"]


def test_remove_matching_without_match_reports_nothing() -> None:
    """No description is returned when nothing was removed."""
    document = XmlDocument.parse(POM_XML.encode("utf-8"))

    assert remove_matching(document, PLUGINS, PLUGIN, lambda el: False) == ""
    assert remove_matching(document, "/project/reporting", PLUGIN, lambda el: True) == ""
    assert len(_artifact_ids(document)) == 2


def test_append_raw_appends_copy_without_dedup() -> None:
    """Raw appends always add a new last child."""
    document = XmlDocument.parse(POM_XML.encode("utf-8"))
    fragment = etree.fromstring(b"<plugin><artifactId>maven-war-plugin</artifactId></plugin>")

    first = append_raw(document, PLUGINS, fragment, label="build plugin", describe=_artifact_id)
    second = append_raw(document, PLUGINS, fragment, label="build plugin")

    assert first == "Added raw build plugin: maven-war-plugin"
    assert second == "Added a raw build plugin"
    assert _artifact_ids(document) == ["maven-compiler-plugin", "maven-war-plugin", "maven-war-plugin", "maven-war-plugin"]
    assert fragment.getparent() is None


def test_append_raw_warns_when_container_missing(caplog: pytest.LogCaptureFixture) -> None:
    """A missing container is logged and leaves the document unchanged."""
    document = XmlDocument.parse(b"<project/>", source="pom.xml")
    fragment = etree.fromstring(b"<plugin/>")

    with caplog.at_level(logging.WARNING, logger="nwcloudctl.mutator"):
        description = append_raw(document, PLUGINS, fragment)

    assert description == ""
    assert "not found in pom.xml" in caplog.text


def test_insert_if_absent_converges_on_single_node() -> None:
    """Repeated inserts leave exactly one matching node."""
    document = XmlDocument.parse(WEB_XML.encode("utf-8"))
    check = "/web-app/resource-ref[res-ref-name='jdbc/DefaultDB']"

    first = insert_if_absent(document, check, _resource_ref, description="Added JNDI resource")
    second = insert_if_absent(document, check, _resource_ref, description="Added JNDI resource")

    assert first == "Added JNDI resource"
    assert second == ""
    assert len(document.find_all(check)) == 1


def test_remove_bean_by_id_is_case_insensitive() -> None:
    """Beans are matched on id regardless of case; other beans remain."""
    document = XmlDocument.parse(SPRING_XML.encode("utf-8"))

    description = remove_bean_by_id(document, "/beans", "DATASOURCE")

    assert description == "Removed bean 'DATASOURCE'"
    assert document.find_first("/beans/bean[@id='dataSource']") is None
    assert document.find_first("/beans/bean[@id='transactionManager']") is not None
    assert remove_bean_by_id(document, "/beans", "dataSource") == ""


def test_edit_session_writes_only_on_change(tmp_path: Path) -> None:
    """The file is rewritten when a primitive changed the tree."""
    path = tmp_path / "web.xml"
    path.write_text(WEB_XML, encoding="utf-8")
    files = FileStore()
    mutator = XmlMutator(files)

    with mutator.edit(path) as session:
        session.insert_if_absent(
            "/web-app/resource-ref[res-ref-name='jdbc/DefaultDB']",
            _resource_ref,
            description="Added JNDI resource",
        )

    assert session.changed is True
    assert b"<res-ref-name>jdbc/DefaultDB</res-ref-name>" in path.read_bytes()
    assert [(change.action, change.description) for change in files.changes] == [
        ("updated", "Added JNDI resource"),
    ]


def test_edit_session_without_change_leaves_bytes(tmp_path: Path) -> None:
    """A no-op session never rewrites the file."""
    path = tmp_path / "applicationContext.xml"
    path.write_text(SPRING_XML, encoding="utf-8")
    before = path.read_bytes()
    files = FileStore()

    with XmlMutator(files).edit(path) as session:
        session.remove_bean_by_id("/beans", "missing")

    assert session.changed is False
    assert path.read_bytes() == before
    assert files.changes == []


def test_edit_session_discards_changes_on_error(tmp_path: Path) -> None:
    """An exception inside the block writes nothing."""
    path = tmp_path / "applicationContext.xml"
    path.write_text(SPRING_XML, encoding="utf-8")
    before = path.read_bytes()

    with pytest.raises(RuntimeError):
        with XmlMutator(FileStore()).edit(path) as session:
            session.remove_bean_by_id("/beans", "dataSource")
            raise RuntimeError("boom")

    assert path.read_bytes() == before


def test_load_rejects_malformed_descriptor(tmp_path: Path) -> None:
    """Malformed descriptors raise MalformedXml naming the file."""
    path = tmp_path / "pom.xml"
    path.write_text("<project>", encoding="utf-8")

    with pytest.raises(MalformedXml, match="pom.xml"):
        XmlMutator(FileStore()).load(path)


def test_remove_matching_names_nodes_by_local_name_by_default() -> None:
    """Without a describer removed nodes are named by their local name."""
    document = XmlDocument.parse(SPRING_XML.encode("utf-8"))

    description = remove_matching(
        document,
        "/beans",
        "/beans/bean",
        lambda el: el.get("id") == "transactionManager",
        label="bean",
    )

    assert description == "Removal of bean: bean"
    assert document.find_first("/beans/bean[@id='transactionManager']") is None
