"""Enable/disable command pairs for the deploy and JPA capabilities.

Every command receives a :class:`ToggleContext` at construction and exposes
``is_available()`` and ``run()``. Callers must only invoke ``run()`` after
``is_available()`` returned True.

Edits are committed file by file. If a later step fails, files already
written stay written and the error propagates to the caller.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from lxml import etree

from .availability import (
    PROPERTIES_FILE,
    Capability,
    can_disable,
    can_enable,
    persistence_descriptor,
    spring_descriptor,
    web_descriptor,
)
from .backups import BackupPolicy, BackupStore
from .errors import NotFound
from .filestore import FileStore
from .mutator import XmlMutator
from .project import ProjectLocator
from .templates import TemplateEngine
from .xmltree import XmlDocument, child_text, local_name

LOGGER = logging.getLogger(__name__)

DEFAULT_PLUGIN_GROUP = "org.apache.maven.plugins"
PLUGINS_PATH = "/project/build/plugins"
PLUGIN_PATH = "/project/build/plugins/plugin"
TEMPLATE_PLUGIN_PATH = "/configuration/nwcloud/build/plugins/plugin"

DEPLOY_TEMPLATE = "deploy/configuration.xml"
PROPERTIES_TEMPLATE = "deploy/nwcloud.properties.j2"
PERSISTENCE_TEMPLATE = "jpa/persistence.xml"

JNDI_NAME = "jdbc/DefaultDB"
DATASOURCE_TYPE = "javax.sql.DataSource"
DATASOURCE_BEAN_ID = "dataSource"
JEE_NAMESPACE = "http://www.springframework.org/schema/jee"


def _plugin_name(element: etree._Element) -> str:
    return child_text(element, "artifactId") or local_name(element)


@dataclass(frozen=True, slots=True)
class PluginDescriptor:
    """A build plugin identified by ``(groupId, artifactId)``."""

    group_id: str
    artifact_id: str
    fragment: etree._Element = field(compare=False, repr=False)

    @property
    def identity(self) -> tuple[str, str]:
        """Return the identity used to decide whether two plugins are the same."""
        return (self.group_id, self.artifact_id)

    @classmethod
    def from_element(cls, element: etree._Element) -> PluginDescriptor | None:
        """Describe *element*, or return None when it has no ``artifactId``."""
        artifact_id = child_text(element, "artifactId")
        if not artifact_id:
            return None
        group_id = child_text(element, "groupId") or DEFAULT_PLUGIN_GROUP
        return cls(group_id=group_id, artifact_id=artifact_id, fragment=element)

    def same_plugin(self, element: etree._Element) -> bool:
        """Return True when *element* declares a plugin with the same identity."""
        other = PluginDescriptor.from_element(element)
        return other is not None and other.identity == self.identity


@dataclass(frozen=True, slots=True)
class DeploySettings:
    """Values written into the staged ``nwcloud.properties`` file."""

    host: str = "hana.ondemand.com"
    account: str = ""
    application: str = ""
    user: str = ""

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "host": self.host,
            "account": self.account,
            "application": self.application,
            "user": self.user,
        }


@dataclass(slots=True)
class ToggleContext:
    """Collaborators shared by the toggle commands of one invocation."""

    locator: ProjectLocator
    files: FileStore
    templates: TemplateEngine
    backup_policy: BackupPolicy = BackupPolicy.SKIP
    deploy: DeploySettings = field(default_factory=DeploySettings)

    @property
    def backups(self) -> BackupStore:
        """Return a backup store bound to this context's file store."""
        return BackupStore(self.files, policy=self.backup_policy)

    @property
    def mutator(self) -> XmlMutator:
        """Return an XML mutator bound to this context's file store."""
        return XmlMutator(self.files)

    def build_descriptor(self) -> Path:
        """Return the build descriptor or raise :class:`NotFound`."""
        path = self.locator.primary_descriptor_path()
        if path is None:
            raise NotFound(f"No build descriptor (pom.xml) found below {self.locator.root}.")
        return path


class ToggleCommand:
    """Base class for one half of an enable/disable pair."""

    name: str = ""
    help: str = ""
    capability: Capability

    def __init__(self, context: ToggleContext) -> None:
        """Bind the command to *context*."""
        self.context = context

    def is_available(self) -> bool:
        """Return True when the command may run against the current files."""
        raise NotImplementedError

    def run(self) -> None:
        """Apply the command."""
        raise NotImplementedError


class _EnableCommand(ToggleCommand):
    def is_available(self) -> bool:
        return can_enable(self.capability, self.context.locator, self.context.files)


class _DisableCommand(ToggleCommand):
    def is_available(self) -> bool:
        return can_disable(self.capability, self.context.locator, self.context.files)


class EnableDeploy(_EnableCommand):
    """Reconfigure build plugins for cloud deployment and stage the plugin settings."""

    name = "enable-deploy"
    help = "Prepare the application for deployment on the SAP HANA Cloud platform."
    capability = Capability.DEPLOY

    def run(self) -> None:
        """Back up the build descriptor, replace templated plugins, stage properties."""
        ctx = self.context
        descriptor = ctx.build_descriptor()
        ctx.backups.backup(descriptor)

        template = XmlDocument.parse(ctx.templates.load(DEPLOY_TEMPLATE), source=DEPLOY_TEMPLATE)
        plugins = [
            plugin
            for plugin in (PluginDescriptor.from_element(el) for el in template.find_all(TEMPLATE_PLUGIN_PATH))
            if plugin is not None
        ]
        if plugins:
            self._update_build_plugins(descriptor, plugins)
        else:
            LOGGER.warning("Template %s defines no build plugins; %s left unchanged.", DEPLOY_TEMPLATE, descriptor)

        properties = ctx.templates.render_to_string(PROPERTIES_TEMPLATE, ctx.deploy.to_dict())
        ctx.files.write_text(
            descriptor.parent / PROPERTIES_FILE,
            properties,
            "Config file for maven-nwcloud-plugin",
        )

    def _update_build_plugins(self, descriptor: Path, plugins: list[PluginDescriptor]) -> None:
        with self.context.mutator.edit(descriptor) as session:
            session.insert_if_absent(
                "/project/build",
                lambda doc: doc.append_child(doc.root, doc.create_element("build")),
                description="Added build section",
            )
            session.insert_if_absent(
                PLUGINS_PATH,
                lambda doc: doc.append_child(doc.find_first("/project/build"), doc.create_element("plugins")),
                description="Added build plugins section",
            )
            for plugin in plugins:
                session.remove_matching(
                    PLUGINS_PATH,
                    PLUGIN_PATH,
                    plugin.same_plugin,
                    label="build plugin",
                    describe=_plugin_name,
                )
            for plugin in plugins:
                session.append_raw(PLUGINS_PATH, plugin.fragment, label="build plugin", describe=_plugin_name)


class DisableDeploy(_DisableCommand):
    """Revert :class:`EnableDeploy`."""

    name = "disable-deploy"
    help = "Revert enable-deploy."
    capability = Capability.DEPLOY

    def run(self) -> None:
        """Restore the build descriptor and remove the staged properties file."""
        ctx = self.context
        descriptor = ctx.build_descriptor()
        ctx.backups.revert(descriptor, "Restoring old build plugin configuration")
        properties = descriptor.parent / PROPERTIES_FILE
        if ctx.files.exists(properties):
            ctx.files.delete(properties, "Delete config file for maven-nwcloud-plugin")


def _build_resource_ref(document: XmlDocument) -> etree._Element:
    resource_ref = document.create_element("resource-ref")
    resource_ref.append(document.create_element("res-ref-name", text=JNDI_NAME))
    resource_ref.append(document.create_element("res-type", text=DATASOURCE_TYPE))
    return document.append_child(document.root, resource_ref)


def _build_jndi_lookup(document: XmlDocument) -> etree._Element:
    lookup = document.create_element(
        "jndi-lookup",
        namespace=JEE_NAMESPACE,
        prefix="jee",
        attrib={"id": DATASOURCE_BEAN_ID, "jndi-name": JNDI_NAME},
    )
    return document.append_child(document.root, lookup)


class EnableJpa(_EnableCommand):
    """Point JPA persistence at the platform-provided data source."""

    name = "enable-jpa"
    help = "Configure JPA persistence to use the SAP HANA Cloud persistence service."
    capability = Capability.JPA

    def run(self) -> None:
        """Replace the persistence unit and wire the JNDI data source."""
        ctx = self.context
        locator = ctx.locator

        persistence = persistence_descriptor(locator)
        ctx.backups.backup(persistence)
        content = ctx.templates.load(PERSISTENCE_TEMPLATE).decode("utf-8")
        ctx.files.write_text(persistence, content, "JPA persistence config (needs EclipseLink)")

        web = web_descriptor(locator)
        ctx.backups.backup(web)
        with ctx.mutator.edit(web) as session:
            session.insert_if_absent(
                f"/web-app/resource-ref[res-ref-name='{JNDI_NAME}']",
                _build_resource_ref,
                description="Added JNDI resource for JPA datasource",
            )

        spring = spring_descriptor(locator)
        ctx.backups.backup(spring)
        with ctx.mutator.edit(spring) as session:
            session.remove_bean_by_id("/beans", DATASOURCE_BEAN_ID)
            session.insert_if_absent(
                f"/beans/jndi-lookup[@id='{DATASOURCE_BEAN_ID}']",
                _build_jndi_lookup,
                description="Added bean for dynamic JNDI lookup of datasource",
            )


class DisableJpa(_DisableCommand):
    """Revert :class:`EnableJpa`."""

    name = "disable-jpa"
    help = "Revert enable-jpa."
    capability = Capability.JPA

    def run(self) -> None:
        """Restore the persistence, web and Spring descriptors."""
        ctx = self.context
        locator = ctx.locator
        ctx.backups.revert(persistence_descriptor(locator), "Restoring former JPA persistence config")
        ctx.backups.revert(web_descriptor(locator), "Restoring former web application config")
        ctx.backups.revert(spring_descriptor(locator), "Restoring former Spring application config")


COMMAND_TYPES: tuple[type[ToggleCommand], ...] = (EnableDeploy, DisableDeploy, EnableJpa, DisableJpa)


def build_commands(context: ToggleContext) -> dict[str, ToggleCommand]:
    """Return every toggle command bound to *context*, keyed by name."""
    return {command_type.name: command_type(context) for command_type in COMMAND_TYPES}


def command_pair(capability: Capability, commands: Mapping[str, ToggleCommand]) -> tuple[ToggleCommand, ToggleCommand]:
    """Return the ``(enable, disable)`` commands for *capability*."""
    enable = commands[f"enable-{capability.value}"]
    disable = commands[f"disable-{capability.value}"]
    return enable, disable


__all__ = [
    "COMMAND_TYPES",
    "DeploySettings",
    "DisableDeploy",
    "DisableJpa",
    "EnableDeploy",
    "EnableJpa",
    "PluginDescriptor",
    "ToggleCommand",
    "ToggleContext",
    "build_commands",
    "command_pair",
]
