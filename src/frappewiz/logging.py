"""Structured operation logging for frappewiz.

Every wizard action runs inside an *operation*. When the operation finishes a
single JSON record is appended to ``operations.jsonl`` and a one-line summary
is written to the human readable ``frappewiz.log``. Logging never interrupts
the wizard: when the log directory cannot be created, or a write fails, the
logger disables itself and carries on silently.
"""
from __future__ import annotations

import json
import logging
import secrets
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

_SECRET_MARKERS = ("password", "secret", "token")
_MASK = "***"


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


def _mask_secrets(values: Mapping[str, object]) -> dict[str, object]:
    masked: dict[str, object] = {}
    for key, value in values.items():
        if any(marker in key.lower() for marker in _SECRET_MARKERS) and value:
            masked[key] = _MASK
        else:
            masked[key] = _sanitize(value)
    return masked


class OperationScope:
    """Collect step details and the final result for one operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        args: Mapping[str, object] | None,
        target: Mapping[str, object] | None,
    ) -> None:
        """Initialise an open operation for *command*."""
        self._logger = logger
        self.command = command
        self.op_id = secrets.token_hex(6)
        self.args = _mask_secrets(args or {})
        self.target = _sanitize(dict(target or {}))
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None
        self._started = time.monotonic()
        self._started_at = datetime.now(UTC)

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record an intermediate step of the operation."""
        entry: dict[str, object] = {"name": name, "status": status}
        if detail:
            entry["detail"] = detail
        self.steps.append(entry)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, warnings=warnings, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
            "context": _sanitize(dict(context or {})),
        }
        if rc is not None:
            result["rc"] = rc
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON record describing this operation."""
        return {
            "ts": self._started_at.isoformat(),
            "op_id": self.op_id,
            "command": self.command,
            "args": self.args,
            "target": self.target,
            "steps": self.steps,
            "result": self.result,
            "duration_ms": int((time.monotonic() - self._started) * 1000),
        }


class StructuredLogger:
    """Append operation records to JSONL and human readable logs."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*, disabling the logger when it is unusable."""
        self.log_dir = Path(log_dir)
        self._operations_log_path = self.log_dir / "operations.jsonl"
        self._human_log_path = self.log_dir / "frappewiz.log"
        self._enabled = True
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Disabling structured log at %s: %s", self.log_dir, exc)
            self._enabled = False

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it when the block exits."""
        scope = OperationScope(self, command, args, target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"{type(exc).__name__}: {exc}", rc=1)
            raise
        finally:
            if scope.result is None:
                scope.success("Operation completed.")
            self._write(scope)

    def _write(self, scope: OperationScope) -> None:
        if not self._enabled:
            return
        record = scope.to_record()
        result = record.get("result") or {}
        status = result.get("status", "unknown") if isinstance(result, Mapping) else "unknown"
        message = result.get("message", "") if isinstance(result, Mapping) else ""
        human = f"{record['ts']} [{status}] {scope.command}: {message}\n"
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
            with self._human_log_path.open("a", encoding="utf-8") as handle:
                handle.write(human)
        except OSError as exc:
            LOGGER.debug("Structured log write failed, disabling: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
