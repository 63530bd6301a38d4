"""Idempotent structural edits applied to XML descriptors."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from lxml import etree

from .filestore import FileStore
from .xmltree import XmlDocument, local_name

LOGGER = logging.getLogger(__name__)

Predicate = Callable[[etree._Element], bool]
Describer = Callable[[etree._Element], str]
Builder = Callable[[XmlDocument], etree._Element]


def remove_matching(
    document: XmlDocument,
    container_path: str,
    candidates_path: str,
    predicate: Predicate,
    *,
    label: str = "element",
    describe: Describer = local_name,
) -> str:
    """Remove every candidate below *container_path* accepted by *predicate*.

    Iteration continues after a match because descriptors may legitimately
    declare the same entry more than once. Removed nodes are named in the
    description through *describe* (their local name by default).
    """
    container = document.find_first(container_path)
    if container is None:
        return ""
    removed: list[str] = []
    for candidate in document.find_all(candidates_path):
        if candidate.getparent() is not container:
            continue
        if predicate(candidate):
            document.remove_child(container, candidate)
            removed.append(describe(candidate))
    if not removed:
        return ""
    return f"Removal of {label}: {', '.join(removed)}"


def append_raw(
    document: XmlDocument,
    container_path: str,
    element: etree._Element,
    *,
    label: str = "element",
    describe: Describer | None = None,
) -> str:
    """Append a deep copy of *element* as the last child of the container.

    No duplicate check is made; callers wanting replace semantics call
    :func:`remove_matching` first.
    """
    container = document.find_first(container_path)
    if container is None:
        LOGGER.warning(
            "Container %s not found in %s; %s was not added.",
            container_path,
            document.source,
            label,
        )
        return ""
    imported = document.append_child(container, document.import_element(element))
    name = describe(imported) if describe is not None else ""
    if name:
        return f"Added raw {label}: {name}"
    return f"Added a raw {label}"


def insert_if_absent(
    document: XmlDocument,
    check_path: str,
    build: Builder,
    *,
    description: str = "",
) -> str:
    """Insert the element created by *build* unless *check_path* already matches.

    *build* receives the document and is responsible for attaching the new
    element. Repeated calls therefore converge on exactly one match.
    """
    if document.find_first(check_path) is not None:
        return ""
    build(document)
    return description or f"Inserted {check_path}"


def remove_bean_by_id(document: XmlDocument, container_path: str, bean_id: str) -> str:
    """Remove direct ``bean`` children whose ``id`` equals *bean_id* (any case)."""
    container = document.find_first(container_path)
    if container is None:
        return ""
    wanted = bean_id.lower()
    removed = 0
    for bean in list(document.iter_children(container, "bean")):
        if (bean.get("id") or "").lower() == wanted:
            document.remove_child(container, bean)
            removed += 1
    if not removed:
        return ""
    return f"Removed bean '{bean_id}'"


@dataclass(slots=True)
class XmlEditSession:
    """Primitives bound to one loaded document, collecting change descriptions."""

    path: Path
    document: XmlDocument
    descriptions: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Return True once any primitive reported a change."""
        return bool(self.descriptions)

    def remove_matching(
        self,
        container_path: str,
        candidates_path: str,
        predicate: Predicate,
        *,
        label: str = "element",
        describe: Describer = local_name,
    ) -> str:
        """Apply :func:`remove_matching` to the session document."""
        return self._record(
            remove_matching(
                self.document,
                container_path,
                candidates_path,
                predicate,
                label=label,
                describe=describe,
            )
        )

    def append_raw(
        self,
        container_path: str,
        element: etree._Element,
        *,
        label: str = "element",
        describe: Describer | None = None,
    ) -> str:
        """Apply :func:`append_raw` to the session document."""
        return self._record(
            append_raw(self.document, container_path, element, label=label, describe=describe)
        )

    def insert_if_absent(self, check_path: str, build: Builder, *, description: str = "") -> str:
        """Apply :func:`insert_if_absent` to the session document."""
        return self._record(insert_if_absent(self.document, check_path, build, description=description))

    def remove_bean_by_id(self, container_path: str, bean_id: str) -> str:
        """Apply :func:`remove_bean_by_id` to the session document."""
        return self._record(remove_bean_by_id(self.document, container_path, bean_id))

    def _record(self, description: str) -> str:
        if description:
            self.descriptions.append(description)
        return description


@dataclass(slots=True)
class XmlMutator:
    """Load, edit and write back XML descriptors through a :class:`FileStore`."""

    files: FileStore

    def load(self, path: Path) -> XmlDocument:
        """Read and parse *path*."""
        return XmlDocument.parse(self.files.read_bytes(path), source=path)

    @contextmanager
    def edit(self, path: Path) -> Iterator[XmlEditSession]:
        """Yield an edit session for *path* and persist it on clean exit.

        The file is rewritten only when a primitive reported a change and the
        serialised tree differs from the bytes that were read.
        """
        original = self.files.read_bytes(path)
        session = XmlEditSession(path=path, document=XmlDocument.parse(original, source=path))
        yield session
        if not session.changed:
            return
        updated = session.document.to_bytes()
        if updated == original:
            return
        self.files.write_text(path, updated.decode("utf-8"), "; ".join(session.descriptions))


__all__ = [
    "XmlEditSession",
    "XmlMutator",
    "append_raw",
    "insert_if_absent",
    "remove_bean_by_id",
    "remove_matching",
]
