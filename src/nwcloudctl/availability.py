"""Availability predicates derived purely from files on disk.

Whether a capability is enabled is never stored anywhere: it is recomputed
from the presence of backups (and staged files) every time it is asked.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .backups import backup_path
from .filestore import FileStore
from .project import ProjectArea, ProjectLocator

PROPERTIES_FILE = "nwcloud.properties"


class Capability(str, Enum):
    """Togglable configuration features."""

    DEPLOY = "deploy"
    JPA = "jpa"


class ToggleState(str, Enum):
    """Derived state of a capability."""

    ENABLED = "enabled"
    DISABLED = "disabled"


@dataclass(frozen=True, slots=True)
class CapabilityLayout:
    """Files involved in toggling one capability."""

    capability: Capability
    required: tuple[Path, ...]
    backed_up: tuple[Path, ...]
    staged: tuple[Path, ...] = ()


def persistence_descriptor(locator: ProjectLocator) -> Path:
    """Return the JPA persistence descriptor path."""
    return locator.resolve(ProjectArea.SRC_MAIN_RESOURCES, "META-INF/persistence.xml")


def web_descriptor(locator: ProjectLocator) -> Path:
    """Return the web application descriptor path."""
    return locator.resolve(ProjectArea.SRC_MAIN_WEBAPP, "WEB-INF/web.xml")


def spring_descriptor(locator: ProjectLocator) -> Path:
    """Return the Spring application context path."""
    return locator.resolve(ProjectArea.SPRING_CONFIG_ROOT, "applicationContext.xml")


def layout_for(capability: Capability, locator: ProjectLocator) -> CapabilityLayout | None:
    """Return the files for *capability*, or None when no project is found."""
    descriptor = locator.primary_descriptor_path()
    if descriptor is None:
        return None
    if capability is Capability.DEPLOY:
        return CapabilityLayout(
            capability=capability,
            required=(descriptor,),
            backed_up=(descriptor,),
            staged=(descriptor.parent / PROPERTIES_FILE,),
        )
    files = (
        persistence_descriptor(locator),
        web_descriptor(locator),
        spring_descriptor(locator),
    )
    return CapabilityLayout(capability=capability, required=files, backed_up=files)


def can_disable(capability: Capability, locator: ProjectLocator, files: FileStore) -> bool:
    """Return True when every backup (and staged file) of *capability* exists."""
    layout = layout_for(capability, locator)
    if layout is None:
        return False
    return all(files.exists(backup_path(path)) for path in layout.backed_up) and all(
        files.exists(path) for path in layout.staged
    )


def can_enable(capability: Capability, locator: ProjectLocator, files: FileStore) -> bool:
    """Return True when *capability*'s files exist and it is not already enabled."""
    layout = layout_for(capability, locator)
    if layout is None:
        return False
    if not all(files.exists(path) for path in layout.required):
        return False
    return not can_disable(capability, locator, files)


def compute_state(capability: Capability, locator: ProjectLocator, files: FileStore) -> ToggleState:
    """Return the state of *capability* as currently encoded on disk."""
    if can_disable(capability, locator, files):
        return ToggleState.ENABLED
    return ToggleState.DISABLED


__all__ = [
    "PROPERTIES_FILE",
    "Capability",
    "CapabilityLayout",
    "ToggleState",
    "can_disable",
    "can_enable",
    "compute_state",
    "layout_for",
    "persistence_descriptor",
    "spring_descriptor",
    "web_descriptor",
]
