"""Project layout resolution for Maven web applications."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

LOGGER = logging.getLogger(__name__)

BUILD_DESCRIPTOR = "pom.xml"


class ProjectArea(str, Enum):
    """Well-known source areas of a Maven web application."""

    ROOT = ""
    SRC_MAIN_RESOURCES = "src/main/resources"
    SRC_MAIN_WEBAPP = "src/main/webapp"
    SPRING_CONFIG_ROOT = "src/main/resources/META-INF/spring"


@dataclass(frozen=True, slots=True)
class ProjectLocator:
    """Locate descriptors below a project root."""

    root: Path

    def __post_init__(self) -> None:
        """Normalise the root path after initialisation."""
        object.__setattr__(self, "root", self.root.expanduser())

    def descriptor_paths(self) -> list[Path]:
        """Return build descriptors, the root one first, then modules."""
        found: list[Path] = []
        top = self.root / BUILD_DESCRIPTOR
        if top.is_file():
            found.append(top)
        if self.root.is_dir():
            found.extend(sorted(path for path in self.root.glob(f"*/{BUILD_DESCRIPTOR}") if path.is_file()))
        return found

    def primary_descriptor_path(self) -> Path | None:
        """Return the build descriptor to edit, or None for a non-Maven tree."""
        descriptors = self.descriptor_paths()
        if not descriptors:
            return None
        if len(descriptors) > 1:
            LOGGER.warning(
                "Found %d build descriptors below %s; using %s.",
                len(descriptors),
                self.root,
                descriptors[0],
            )
        return descriptors[0]

    def resolve(self, area: ProjectArea, relative: str = "") -> Path:
        """Return ``root / area / relative``."""
        base = self.root / area.value if area.value else self.root
        return base / relative if relative else base


__all__ = ["BUILD_DESCRIPTOR", "ProjectArea", "ProjectLocator"]
