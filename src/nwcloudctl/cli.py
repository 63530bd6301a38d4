"""Typer-powered command line interface for ``nwcloudctl``.

Each capability is exposed as an enable/disable command pair. Whether a
command may run is decided from the project files alone, so the CLI refuses
an unavailable command with exit code 2 instead of touching anything.
"""
from __future__ import annotations

import json
import logging
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .availability import Capability, compute_state
from .commands import ToggleCommand, ToggleContext, build_commands, command_pair
from .config import AppConfig, ConfigError, load_config
from .errors import (
    BackupAlreadyExists,
    BackupMissing,
    IoFailure,
    MalformedXml,
    NotFound,
    TemplateInvalid,
    TemplateMissing,
)
from .exit_codes import ExitCode
from .filestore import FileChange, FileStore
from .locking import LockError, LockManager
from .logging import OperationScope, StructuredLogger
from .project import ProjectLocator
from .templates import TemplateEngine

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to nwcloudctl's YAML config file.",
)

PROJECT_ROOT_OPTION = typer.Option(
    None,
    "--project-root",
    "-p",
    file_okay=False,
    dir_okay=True,
    help="Project directory to operate on (defaults to the current directory).",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        SAP HANA Cloud project configuration toggles.

        Enable or revert the deployment and JPA persistence setup of a Maven
        web application. Every enable command backs up the files it edits so
        the matching disable command can restore them exactly.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the effective configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    project_root: Path
    locator: ProjectLocator
    files: FileStore
    templates: TemplateEngine
    locks: LockManager
    logger: StructuredLogger
    commands: dict[str, ToggleCommand]


def _configure_console_logging() -> None:
    package_logger = logging.getLogger("nwcloudctl")
    if any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        return
    handler = RichHandler(console=err_console, show_time=False, show_path=False)
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.WARNING)


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    project_root: Path | None,
    lock_timeout_override: float | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    _configure_console_logging()

    overrides: dict[str, object] = {}
    if lock_timeout_override is not None:
        overrides["lock_timeout"] = lock_timeout_override

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error: {exc}[/red]")
        raise typer.Exit(code=ExitCode.ENVIRONMENT) from exc

    root = (project_root or Path.cwd()).expanduser()
    locator = ProjectLocator(root)
    files = FileStore()
    templates = TemplateEngine.with_overrides(config.templates_dir)
    toggles = ToggleContext(
        locator=locator,
        files=files,
        templates=templates,
        backup_policy=config.backup_policy,
        deploy=config.deploy,
    )
    runtime = RuntimeContext(
        config=config,
        project_root=root,
        locator=locator,
        files=files,
        templates=templates,
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
        commands=build_commands(toggles),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None, None, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the nwcloudctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    project_root: Path | None = PROJECT_ROOT_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file, project_root, lock_timeout)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"nwcloudctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file, project_root, lock_timeout)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.UNAVAILABLE,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _format_change(change: FileChange, root: Path) -> str:
    try:
        shown = change.path.relative_to(root)
    except ValueError:
        shown = change.path
    line = f"{change.action.capitalize()} {shown}"
    if change.description:
        line += f" [{change.description}]"
    return line


def _report_changes(runtime: RuntimeContext, op: OperationScope, changes: Sequence[FileChange]) -> None:
    for change in changes:
        line = _format_change(change, runtime.project_root)
        console.print(line, markup=False, highlight=False)
        op.add_step(f"file.{change.action}", status="success", detail=line)


def _run_toggle(ctx: typer.Context, name: str) -> None:
    runtime = _get_runtime(ctx)
    command = runtime.commands[name]
    with runtime.logger.operation(
        name,
        args={"project_root": runtime.project_root},
        target={"kind": "capability", "name": command.capability.value},
    ) as op:
        try:
            with runtime.locks.project_lock(runtime.project_root) as handle:
                op.set_lock_wait_ms(handle.wait_ms)
                _execute_toggle(runtime, command, op)
        except LockError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)


def _execute_toggle(runtime: RuntimeContext, command: ToggleCommand, op: OperationScope) -> None:
    if not command.is_available():
        state = compute_state(command.capability, runtime.locator, runtime.files)
        _command_error(
            op,
            f"'{command.name}' is not available for {runtime.project_root} "
            f"({command.capability.value} is {state.value}).",
            rc=ExitCode.UNAVAILABLE,
        )

    first_change = len(runtime.files.changes)
    try:
        command.run()
    except (TemplateMissing, TemplateInvalid, MalformedXml) as exc:
        _report_changes(runtime, op, runtime.files.changes[first_change:])
        _command_error(op, f"{command.name} failed: {exc}", rc=ExitCode.EDIT)
    except (NotFound, IoFailure, BackupMissing, BackupAlreadyExists) as exc:
        _report_changes(runtime, op, runtime.files.changes[first_change:])
        _command_error(op, f"{command.name} failed: {exc}", rc=ExitCode.ENVIRONMENT)

    changes = runtime.files.changes[first_change:]
    _report_changes(runtime, op, changes)
    console.print(f"[green]{command.name} complete.[/green]")
    op.success(f"{command.name} complete.", changed=len(changes))


@app.command("enable-deploy")
def enable_deploy(ctx: typer.Context) -> None:
    """Prepare the application for deployment on SAP HANA Cloud."""
    _run_toggle(ctx, "enable-deploy")


@app.command("disable-deploy")
def disable_deploy(ctx: typer.Context) -> None:
    """Revert enable-deploy."""
    _run_toggle(ctx, "disable-deploy")


@app.command("enable-jpa")
def enable_jpa(ctx: typer.Context) -> None:
    """Configure JPA persistence to use the SAP HANA Cloud persistence service."""
    _run_toggle(ctx, "enable-jpa")


@app.command("disable-jpa")
def disable_jpa(ctx: typer.Context) -> None:
    """Revert enable-jpa."""
    _run_toggle(ctx, "disable-jpa")


@app.command()
def status(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit capability states as JSON instead of a table.",
    ),
) -> None:
    """Show the state of each capability and which command is available."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "status",
        args={"json": json_output, "project_root": runtime.project_root},
        target={"kind": "project"},
    ) as op:
        rows: list[dict[str, object]] = []
        for capability in Capability:
            enable, disable = command_pair(capability, runtime.commands)
            rows.append(
                {
                    "capability": capability.value,
                    "state": compute_state(capability, runtime.locator, runtime.files).value,
                    enable.name: enable.is_available(),
                    disable.name: disable.is_available(),
                }
            )
        descriptor = runtime.locator.primary_descriptor_path()
        payload = {
            "project_root": str(runtime.project_root),
            "build_descriptor": str(descriptor) if descriptor else None,
            "capabilities": rows,
        }

        if json_output:
            console.print_json(data=payload)
            op.success("Rendered capability status as JSON.", changed=0)
            return

        if descriptor is None:
            console.print(f"[yellow]No pom.xml found below {runtime.project_root}.[/yellow]")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Capability", style="bold")
        table.add_column("State")
        table.add_column("Available")
        for capability, row in zip(Capability, rows, strict=True):
            enable, disable = command_pair(capability, runtime.commands)
            available = [name for name in (enable.name, disable.name) if row[name]]
            state = str(row["state"])
            rendered_state = f"[green]{state}[/green]" if state == "enabled" else state
            table.add_row(capability.value, rendered_state, ", ".join(available) or "-")
        console.print(table)
        op.success("Rendered capability status table.", changed=0)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
