"""Error taxonomy shared by the toggle engine."""
from __future__ import annotations


class NWCloudError(RuntimeError):
    """Base class for failures raised while toggling a capability."""


class NotFound(NWCloudError):
    """Raised when a file required by an operation is absent."""


class IoFailure(NWCloudError):
    """Raised when copying, writing or deleting a project file fails."""


class TemplateMissing(NWCloudError):
    """Raised when a bundled template cannot be located."""


class TemplateInvalid(NWCloudError):
    """Raised when a template cannot be compiled or rendered."""


class MalformedXml(NWCloudError):
    """Raised when a descriptor or template is not well-formed XML."""


class BackupMissing(NWCloudError):
    """Raised when reverting a file that has no backup."""


class BackupAlreadyExists(NWCloudError):
    """Raised when a backup would overwrite a previously captured original."""


__all__ = [
    "BackupAlreadyExists",
    "BackupMissing",
    "IoFailure",
    "MalformedXml",
    "NWCloudError",
    "NotFound",
    "TemplateInvalid",
    "TemplateMissing",
]
