"""Bundled templates with optional on-disk overrides."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
)

from .errors import TemplateInvalid, TemplateMissing


@dataclass(slots=True)
class TemplateEngine:
    """Load raw fragments and render Jinja2 templates.

    Templates found under the override directory shadow the ones bundled in
    ``nwcloudctl/templates``.
    """

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Build an engine searching *override_dir* before the bundled templates."""
        loaders: list[BaseLoader] = []
        if override_dir is not None and override_dir.is_dir():
            loaders.append(FileSystemLoader(str(override_dir)))
        loaders.append(PackageLoader("nwcloudctl", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        return cls(environment=environment)

    def load(self, name: str) -> bytes:
        """Return the unrendered source of template *name*."""
        loader = self.environment.loader
        if loader is None:  # pragma: no cover - always configured by with_overrides
            raise TemplateMissing(f"No template loader configured for '{name}'.")
        try:
            source, _, _ = loader.get_source(self.environment, name)
        except TemplateNotFound as exc:
            raise TemplateMissing(f"Template '{name}' is not available.") from exc
        return source.encode("utf-8")

    def render_to_string(self, name: str, context: Mapping[str, object]) -> str:
        """Render template *name* with *context*.

        Raises :class:`TemplateMissing` for unknown templates and
        :class:`TemplateInvalid` for syntax errors or undefined variables.
        """
        try:
            template = self.environment.get_template(name)
            return template.render(**dict(context))
        except TemplateNotFound as exc:
            raise TemplateMissing(f"Template '{name}' is not available.") from exc
        except TemplateError as exc:
            raise TemplateInvalid(f"Template '{name}' failed to render: {exc}") from exc


__all__ = ["TemplateEngine"]
