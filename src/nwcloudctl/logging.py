"""Structured operation logging for CLI commands.

Each CLI command runs inside :meth:`StructuredLogger.operation`, which appends
one JSON record per operation to ``operations.jsonl`` in the logs directory.
Logging must never break a command: when the directory cannot be created or a
write fails the logger disables itself and later operations are not recorded.
"""
from __future__ import annotations

import json
import time
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

OPERATIONS_LOG = "operations.jsonl"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _sanitise(value: object) -> object:
    """Return a JSON-safe rendition of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final outcome of a single CLI operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Start tracking *command*."""
        self._logger = logger
        self.command = command
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.lock_wait_ms: int | None = None
        self.result: dict[str, object] | None = None
        self._started_at = _now_iso()
        self._started = time.monotonic()

    def __enter__(self) -> OperationScope:
        """Return the scope itself."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Record the operation, deriving an outcome when none was set."""
        if self.result is None:
            if exc is None:
                self._set_result("success", "Completed.")
            else:
                self._set_result("error", str(exc) or type(exc).__name__)
        self._logger.write(self._record())

    # Public helpers ------------------------------------------------
    def add_step(self, name: str, *, status: str, detail: str | None = None) -> None:
        """Append a named step with its *status*."""
        step: dict[str, object] = {"name": name, "status": status}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited for its lock."""
        self.lock_wait_ms = wait_ms

    def success(
        self,
        message: str,
        *,
        changed: int | None = None,
        backups: Sequence[object] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation successful."""
        self._set_result("success", message, changed=changed, backups=backups, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int | None = None,
        backups: Sequence[object] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            warnings=warnings,
            errors=errors,
            changed=changed,
            backups=backups,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        warnings: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation failed; *errors* defaults to ``[message]``."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            warnings=warnings,
            rc=rc,
            context=context,
        )

    # ------------------------------------------------------------------
    def _set_result(
        self,
        status: str,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int | None = None,
        backups: Sequence[object] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {"status": status, "message": message}
        if warnings:
            result["warnings"] = list(warnings)
        if errors:
            result["errors"] = list(errors)
        if changed is not None:
            result["changed"] = changed
        if backups:
            result["backups"] = _sanitise(list(backups))
        if rc is not None:
            result["rc"] = rc
        if context:
            result["context"] = _sanitise(dict(context))
        self.result = result

    def _record(self) -> dict[str, object]:
        record: dict[str, object] = {
            "timestamp": self._started_at,
            "command": self.command,
            "args": _sanitise(self.args),
            "target": _sanitise(self.target),
            "steps": self.steps,
            "duration_ms": int((time.monotonic() - self._started) * 1000),
            "result": self.result,
        }
        if self.lock_wait_ms is not None:
            record["lock_wait_ms"] = self.lock_wait_ms
        return record


class StructuredLogger:
    """Append JSON operation records under *logs_dir*."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare the logs directory, disabling logging if that fails."""
        self.logs_dir = logs_dir
        self._operations_log_path = logs_dir / OPERATIONS_LOG
        self._enabled = True
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> OperationScope:
        """Return a scope tracking *command*; use it as a context manager."""
        return OperationScope(self, command, args=args, target=target)

    def write(self, record: Mapping[str, object]) -> None:
        """Append *record* as a JSON line, disabling the logger on failure."""
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=False))
                handle.write("\n")
        except OSError:
            self._enabled = False


__all__ = ["OPERATIONS_LOG", "OperationScope", "StructuredLogger"]
