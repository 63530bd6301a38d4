"""Explicit XML tree type with a small structural query API.

Descriptors are parsed with lxml but every lookup goes through the helpers in
this module instead of XPath. Paths are absolute and ``/``-separated, e.g.::

    /project/build/plugins/plugin
    /web-app/resource-ref[res-ref-name='jdbc/DefaultDB']
    /beans/jndi-lookup[@id='dataSource']

Steps match element *local* names, so the default namespaces used by Maven,
Java EE and Spring descriptors do not need to be spelled out. A step may
carry a single predicate: ``[@attr='value']`` compares an attribute and
``[child='text']`` compares the stripped text of a direct child element.
"""
from __future__ import annotations

import copy
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

from lxml import etree

from .errors import MalformedXml

_STEP_RE = re.compile(r"^(?P<name>[A-Za-z_][\w.\-]*)(?:\[(?P<predicate>.+)\])?$")
_ATTR_PREDICATE_RE = re.compile(r"^@(?P<key>[A-Za-z_][\w.\-:]*)\s*=\s*(['\"])(?P<value>.*)\2$")
_CHILD_PREDICATE_RE = re.compile(r"^(?P<key>[A-Za-z_][\w.\-]*)\s*=\s*(['\"])(?P<value>.*)\2$")


def _parser() -> etree.XMLParser:
    return etree.XMLParser(remove_blank_text=True, resolve_entities=False, no_network=True)


def is_element(node: object) -> bool:
    """Return True for element nodes (comments and PIs are skipped)."""
    return isinstance(node, etree._Element) and isinstance(node.tag, str)


def local_name(element: etree._Element) -> str:
    """Return *element*'s tag without its namespace."""
    return etree.QName(element).localname


def namespace_of(element: etree._Element) -> str | None:
    """Return *element*'s namespace URI, if any."""
    return etree.QName(element).namespace


def child_text(element: etree._Element, name: str) -> str | None:
    """Return the stripped text of the first direct child called *name*."""
    for child in element:
        if is_element(child) and local_name(child) == name:
            return (child.text or "").strip()
    return None


def import_element(element: etree._Element, namespace: str | None) -> etree._Element:
    """Deep-copy *element*, moving unqualified elements into *namespace*."""
    imported = copy.deepcopy(element)
    imported.tail = None
    if namespace:
        for node in imported.iter():
            if is_element(node) and namespace_of(node) is None:
                node.tag = f"{{{namespace}}}{local_name(node)}"
    return imported


@dataclass(frozen=True, slots=True)
class PathStep:
    """One step of a structural path."""

    name: str
    attribute: str | None = None
    child: str | None = None
    value: str | None = None

    def matches(self, element: etree._Element) -> bool:
        """Return True when *element* satisfies this step."""
        if not is_element(element) or local_name(element) != self.name:
            return False
        if self.attribute is not None:
            return element.get(self.attribute) == self.value
        if self.child is not None:
            return any(
                is_element(node)
                and local_name(node) == self.child
                and (node.text or "").strip() == self.value
                for node in element
            )
        return True


def _split_path(path: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    quote: str | None = None
    for char in path:
        if quote:
            if char == quote:
                quote = None
        elif char in {"'", '"'} and depth:
            quote = char
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        elif char == "/" and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def parse_path(path: str) -> tuple[PathStep, ...]:
    """Parse *path* into steps, raising ``ValueError`` on unsupported syntax."""
    if not path.startswith("/"):
        raise ValueError(f"Structural paths must be absolute: {path!r}")
    raw_steps = _split_path(path[1:])
    steps: list[PathStep] = []
    for raw in raw_steps:
        match = _STEP_RE.match(raw.strip())
        if match is None:
            raise ValueError(f"Unsupported path step {raw!r} in {path!r}")
        predicate = match.group("predicate")
        if predicate is None:
            steps.append(PathStep(match.group("name")))
            continue
        predicate = predicate.strip()
        attr_match = _ATTR_PREDICATE_RE.match(predicate)
        if attr_match:
            steps.append(
                PathStep(
                    match.group("name"),
                    attribute=attr_match.group("key"),
                    value=attr_match.group("value"),
                )
            )
            continue
        child_match = _CHILD_PREDICATE_RE.match(predicate)
        if child_match:
            steps.append(
                PathStep(
                    match.group("name"),
                    child=child_match.group("key"),
                    value=child_match.group("value"),
                )
            )
            continue
        raise ValueError(f"Unsupported predicate [{predicate}] in {path!r}")
    return tuple(steps)


class XmlDocument:
    """A parsed descriptor plus the structural operations performed on it."""

    def __init__(self, tree: etree._ElementTree, *, source: str | None = None) -> None:
        """Wrap an already parsed lxml tree."""
        self._tree = tree
        self.source = source

    @classmethod
    def parse(cls, data: bytes, *, source: str | Path | None = None) -> XmlDocument:
        """Parse *data*; raise :class:`MalformedXml` naming *source* on failure."""
        label = str(source) if source is not None else "<memory>"
        try:
            root = etree.fromstring(data, parser=_parser())
        except etree.XMLSyntaxError as exc:
            raise MalformedXml(f"Malformed XML in {label}: {exc}") from exc
        return cls(root.getroottree(), source=label)

    @property
    def root(self) -> etree._Element:
        """Return the document element."""
        return self._tree.getroot()

    # Queries -------------------------------------------------------
    def find_all(self, path: str) -> list[etree._Element]:
        """Return every element matching *path*, in document order."""
        steps = parse_path(path)
        if not steps[0].matches(self.root):
            return []
        current = [self.root]
        for step in steps[1:]:
            current = [child for node in current for child in self.children(node) if step.matches(child)]
            if not current:
                break
        return current

    def find_first(self, path: str) -> etree._Element | None:
        """Return the first element matching *path*, or None."""
        found = self.find_all(path)
        return found[0] if found else None

    def children(self, element: etree._Element) -> list[etree._Element]:
        """Return the direct element children of *element*."""
        return [child for child in element if is_element(child)]

    def iter_children(self, element: etree._Element, name: str) -> Iterator[etree._Element]:
        """Yield direct children of *element* whose local name is *name*."""
        for child in self.children(element):
            if local_name(child) == name:
                yield child

    # Mutations -----------------------------------------------------
    def remove_child(self, parent: etree._Element, child: etree._Element) -> None:
        """Detach *child* from *parent*."""
        parent.remove(child)

    def append_child(self, parent: etree._Element, child: etree._Element) -> etree._Element:
        """Append *child* as the last child of *parent* and return it."""
        parent.append(child)
        return child

    def create_element(
        self,
        name: str,
        *,
        namespace: str | None = None,
        prefix: str | None = None,
        attrib: Mapping[str, str] | None = None,
        text: str | None = None,
    ) -> etree._Element:
        """Create a detached element in the document's namespace context.

        Without an explicit *namespace* the element joins the namespace of the
        document element. A *prefix* is only declared when the namespace is
        not already bound on the document element.
        """
        ns = namespace if namespace is not None else namespace_of(self.root)
        tag = f"{{{ns}}}{name}" if ns else name
        nsmap: dict[str | None, str] | None = None
        if ns and prefix and ns not in self.root.nsmap.values():
            nsmap = {prefix: ns}
        element = self.root.makeelement(tag, nsmap=nsmap)
        for key, value in (attrib or {}).items():
            element.set(key, value)
        if text is not None:
            element.text = text
        return element

    def import_element(self, element: etree._Element) -> etree._Element:
        """Deep-copy *element* into this document's namespace."""
        return import_element(element, namespace_of(self.root))

    # Serialisation -------------------------------------------------
    def to_bytes(self) -> bytes:
        """Serialise the whole document (pretty-printed UTF-8 with declaration)."""
        return etree.tostring(
            self._tree,
            xml_declaration=True,
            encoding="UTF-8",
            pretty_print=True,
        )


__all__ = [
    "PathStep",
    "XmlDocument",
    "child_text",
    "import_element",
    "is_element",
    "local_name",
    "namespace_of",
    "parse_path",
]
