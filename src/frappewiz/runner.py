"""External command execution for the provisioning pipeline."""
from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

LOGGER = logging.getLogger(__name__)

_SECRET_FLAG_MARKERS = ("password", "secret", "token")


def redact_command(args: Sequence[str]) -> str:
    """Join *args* for display, masking values passed to secret options."""
    shown: list[str] = []
    mask_next = False
    for arg in args:
        if mask_next:
            shown.append("***")
            mask_next = False
            continue
        lowered = arg.lower()
        if arg.startswith("--") and any(marker in lowered for marker in _SECRET_FLAG_MARKERS):
            if "=" in arg:
                shown.append(arg.split("=", 1)[0] + "=***")
            else:
                shown.append(arg)
                mask_next = True
            continue
        shown.append(arg)
    return " ".join(shown)


class CommandErrorKind(str, Enum):
    """Classification for failed external commands."""

    EXIT_STATUS = "exit-status"
    MISSING_BINARY = "missing-binary"


@dataclass(slots=True)
class CommandResult:
    """Outcome of a single external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    cwd: Path | None = None
    dry_run: bool = False
    error_kind: CommandErrorKind | None = None

    @property
    def ok(self) -> bool:
        """Return True when the command exited successfully."""
        return self.returncode == 0 and self.error_kind is None

    @property
    def command_line(self) -> str:
        """Return the command as a display string with secret values masked."""
        return redact_command(self.args)

    def output(self) -> str:
        """Return the most useful captured output (stdout before stderr)."""
        return (self.stdout or self.stderr or "").strip()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "command": self.command_line,
            "returncode": self.returncode,
            "cwd": str(self.cwd) if self.cwd is not None else None,
            "dry_run": self.dry_run,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


class CommandError(RuntimeError):
    """Raised when an external command fails."""

    def __init__(self, result: CommandResult) -> None:
        """Build the error message from *result*."""
        self.result = result
        if result.error_kind is CommandErrorKind.MISSING_BINARY:
            message = f"{result.args[0]} not found (while running '{result.command_line}')"
        else:
            detail = (result.stderr or result.stdout or "").strip() or "no output"
            message = f"{result.command_line} failed (exit {result.returncode}): {detail}"
        super().__init__(message)

    @property
    def kind(self) -> CommandErrorKind:
        """Return the error classification."""
        return self.result.error_kind or CommandErrorKind.EXIT_STATUS


@dataclass(slots=True)
class CommandRunner:
    """Run external tools with an explicit working directory and environment.

    Mutating commands honour ``dry_run`` and are only logged. Read-only
    probes always execute so that precondition checks see real system state.
    Every result is appended to :attr:`history`.
    """

    env: Mapping[str, str] | None = None
    dry_run: bool = False
    sudo_bin: str = "sudo"
    history: list[CommandResult] = field(default_factory=list)

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
        capture_output: bool = True,
        sudo: bool = False,
        preserve_env: bool = False,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run a mutating command, raising :class:`CommandError` on failure."""
        command = self._build(args, sudo=sudo, preserve_env=preserve_env)
        if self.dry_run:
            LOGGER.info("dry-run: %s", redact_command(command))
            result = CommandResult(args=command, returncode=0, cwd=cwd, dry_run=True)
            self.history.append(result)
            return result
        result = self._execute(
            command,
            cwd=cwd,
            capture_output=capture_output,
            input_text=input_text,
        )
        if check and not result.ok:
            raise CommandError(result)
        return result

    def probe(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        sudo: bool = False,
    ) -> CommandResult:
        """Run a read-only command and return its result without raising."""
        command = self._build(args, sudo=sudo, preserve_env=False)
        return self._execute(command, cwd=cwd, capture_output=True, input_text=None)

    def which(self, name: str) -> str | None:
        """Return the resolved path of *name* on the runner's PATH."""
        search_path = self.env.get("PATH") if self.env is not None else None
        return shutil.which(name, path=search_path)

    # ------------------------------------------------------------------
    def _build(self, args: Sequence[str], *, sudo: bool, preserve_env: bool) -> tuple[str, ...]:
        command = [str(arg) for arg in args]
        if sudo:
            prefix = [self.sudo_bin, "-E"] if preserve_env else [self.sudo_bin]
            command = [*prefix, *command]
        return tuple(command)

    def _execute(
        self,
        command: tuple[str, ...],
        *,
        cwd: Path | None,
        capture_output: bool,
        input_text: str | None,
    ) -> CommandResult:
        LOGGER.debug("exec: %s (cwd=%s)", redact_command(command), cwd)
        try:
            completed = subprocess.run(  # noqa: S603
                list(command),
                cwd=str(cwd) if cwd is not None else None,
                env=dict(self.env) if self.env is not None else None,
                capture_output=capture_output,
                input=input_text,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            result = CommandResult(
                args=command,
                returncode=127,
                cwd=cwd,
                error_kind=CommandErrorKind.MISSING_BINARY,
            )
            self.history.append(result)
            return result
        result = CommandResult(
            args=command,
            returncode=completed.returncode,
            stdout=getattr(completed, "stdout", "") or "",
            stderr=getattr(completed, "stderr", "") or "",
            cwd=cwd,
            error_kind=None if completed.returncode == 0 else CommandErrorKind.EXIT_STATUS,
        )
        self.history.append(result)
        return result


__all__ = [
    "CommandError",
    "CommandErrorKind",
    "CommandResult",
    "CommandRunner",
    "redact_command",
]
