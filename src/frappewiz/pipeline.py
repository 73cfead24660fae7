"""Step model and executor for the provisioning pipeline.

A step is a named handler taking the shared :class:`WizardContext` and
returning a :class:`StepResult`. The :class:`Pipeline` runs steps one at a
time, records each run as a structured log operation and converts the
exceptions a step may raise into results:

* :class:`StepValidationError` and :class:`~frappewiz.prompts.PromptError`
  abort the step; the caller may carry on with the next one.
* :class:`~frappewiz.runner.CommandError` is fatal and surfaces as
  :class:`PipelineAbort` so that no further step runs.
"""
from __future__ import annotations

import getpass
import socket
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from .config import AppConfig, ProfileConfig
from .logging import OperationScope, StructuredLogger
from .models import BenchInstance, ProductionConfig, SiteInstance
from .nginx_config import NginxConfigError
from .prompts import PromptError, Prompter
from .providers import (
    AptProvider,
    BenchProvider,
    GitProvider,
    MariaDBProvider,
    NginxProvider,
    NodeRuntimeManager,
    SshKeyManager,
    SupervisorProvider,
    SystemdProvider,
    VirtualEnvManager,
    YarnManager,
)
from .runner import CommandError, CommandResult, CommandRunner
from .tls import CertbotProvider, Resolver


class StepStatus(str, Enum):
    """Terminal state of a step run."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    WARNING = "warning"


class StepErrorKind(str, Enum):
    """Why a step did not complete cleanly."""

    VALIDATION = "validation"
    PRECONDITION = "precondition"
    ENVIRONMENT = "environment"
    COMMAND = "command"


class StepValidationError(ValueError):
    """Raised when operator input is missing or invalid."""


class UnknownStepError(ValueError):
    """Raised when a step key is not registered."""


@dataclass(slots=True)
class StepResult:
    """Outcome of a single step run."""

    key: str
    status: StepStatus
    message: str
    commands: list[CommandResult] = field(default_factory=list)
    error_kind: StepErrorKind | None = None
    context: dict[str, object] = field(default_factory=dict)

    @classmethod
    def completed(cls, key: str, message: str, **context: object) -> StepResult:
        return cls(key, StepStatus.COMPLETED, message, context=dict(context))

    @classmethod
    def skipped(cls, key: str, message: str, **context: object) -> StepResult:
        return cls(
            key,
            StepStatus.SKIPPED,
            message,
            error_kind=StepErrorKind.PRECONDITION,
            context=dict(context),
        )

    @classmethod
    def aborted(
        cls,
        key: str,
        message: str,
        *,
        kind: StepErrorKind = StepErrorKind.VALIDATION,
    ) -> StepResult:
        return cls(key, StepStatus.ABORTED, message, error_kind=kind)

    @classmethod
    def warning(
        cls,
        key: str,
        message: str,
        *,
        kind: StepErrorKind = StepErrorKind.ENVIRONMENT,
        **context: object,
    ) -> StepResult:
        return cls(key, StepStatus.WARNING, message, error_kind=kind, context=dict(context))

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "key": self.key,
            "status": self.status.value,
            "message": self.message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "commands": [command.to_dict() for command in self.commands],
            "context": dict(self.context),
        }


StepHandler = Callable[["WizardContext"], StepResult]


@dataclass(frozen=True, slots=True)
class Step:
    """A registered pipeline step."""

    key: str
    title: str
    handler: StepHandler


class PipelineAbort(RuntimeError):
    """Raised when an external command fails inside a step."""

    def __init__(self, step_key: str, error: CommandError, result: StepResult) -> None:
        """Record the failing step and its command error."""
        super().__init__(f"Error during step '{step_key}': {error}")
        self.step_key = step_key
        self.error = error
        self.result = result


@dataclass
class WizardContext:
    """Everything a step needs: configuration, I/O and providers."""

    config: AppConfig
    profile: ProfileConfig
    prompter: Prompter
    runner: CommandRunner
    logger: StructuredLogger
    console: Console
    user: str
    apt: AptProvider
    node: NodeRuntimeManager
    yarn: YarnManager
    venv: VirtualEnvManager
    systemd: SystemdProvider
    mariadb: MariaDBProvider
    ssh: SshKeyManager
    git: GitProvider
    bench: BenchProvider
    nginx: NginxProvider
    supervisor: SupervisorProvider
    certbot: CertbotProvider
    resolver: Resolver = socket.getaddrinfo
    presets: dict[str, object] = field(default_factory=dict)
    benches: dict[str, BenchInstance] = field(default_factory=dict)
    sites: list[SiteInstance] = field(default_factory=list)
    production: ProductionConfig | None = None
    current_bench: BenchInstance | None = None

    @property
    def home(self) -> Path:
        """Return the directory benches live in."""
        return self.config.home

    def bench_path(self, name: str) -> Path:
        """Return the directory of the bench called *name*."""
        return self.home / name

    def ask(
        self,
        key: str,
        message: str,
        *,
        default: str | None = None,
        secret: bool = False,
    ) -> str:
        """Return a preset answer for *key* or ask the prompter."""
        if key in self.presets:
            return str(self.presets[key]).strip()
        return self.prompter.ask(key, message, default=default, secret=secret)

    def confirm(self, key: str, message: str, *, default: bool = False) -> bool:
        """Return a preset yes/no answer for *key* or ask the prompter."""
        if key in self.presets:
            return bool(self.presets[key])
        return self.prompter.confirm(key, message, default=default)

    def require(self, value: str, label: str) -> str:
        """Return *value* stripped, raising when it is empty."""
        text = value.strip()
        if not text:
            raise StepValidationError(f"{label} cannot be empty")
        return text

    def remember_bench(self, name: str, frappe_version: str | None = None) -> BenchInstance:
        """Record *name* as the bench the session is working on."""
        bench = self.benches.get(name)
        if bench is None or (frappe_version and bench.frappe_version != frappe_version):
            bench = BenchInstance(
                name=name,
                path=self.bench_path(name),
                frappe_version=frappe_version or (bench.frappe_version if bench else None),
            )
            self.benches[name] = bench
        self.current_bench = bench
        return bench

    def require_bench(self, name: str) -> BenchInstance:
        """Return the bench called *name*, raising when its directory is missing.

        During a dry run a bench created earlier in the session counts as
        present even though nothing was written to disk.
        """
        name = self.require(name, "Bench name")
        if "/" in name or name in {".", ".."}:
            raise StepValidationError(f"Invalid bench name '{name}'")
        path = self.bench_path(name)
        known = self.runner.dry_run and name in self.benches
        if not path.is_dir() and not known:
            raise StepValidationError(f"Bench directory '{name}' not found!")
        return self.remember_bench(name)


def create_context(
    config: AppConfig,
    profile: ProfileConfig,
    *,
    prompter: Prompter,
    runner: CommandRunner,
    logger: StructuredLogger,
    console: Console,
    user: str | None = None,
    resolver: Resolver = socket.getaddrinfo,
) -> WizardContext:
    """Wire providers for *config* around a shared *runner*."""
    systemd = SystemdProvider(runner)
    apt = AptProvider(runner)
    return WizardContext(
        config=config,
        profile=profile,
        prompter=prompter,
        runner=runner,
        logger=logger,
        console=console,
        user=user or getpass.getuser(),
        apt=apt,
        node=NodeRuntimeManager(
            runner,
            apt,
            setup_url=config.node.setup_url,
            minimum_major=config.node.minimum_major,
        ),
        yarn=YarnManager(runner),
        venv=VirtualEnvManager(runner, config.venv_dir),
        systemd=systemd,
        mariadb=MariaDBProvider(runner, systemd),
        ssh=SshKeyManager(runner, config.ssh_key),
        git=GitProvider(runner),
        bench=BenchProvider(runner, bench_bin=config.bench_bin),
        nginx=NginxProvider(runner, systemd, conf_dir=config.paths.nginx_conf_dir),
        supervisor=SupervisorProvider(runner, conf_dir=config.paths.supervisor_conf_dir),
        certbot=CertbotProvider(runner),
        resolver=resolver,
    )


_STATUS_STYLES = {
    StepStatus.COMPLETED: "green",
    StepStatus.SKIPPED: "yellow",
    StepStatus.WARNING: "yellow",
    StepStatus.ABORTED: "red",
}


class Pipeline:
    """Run registered steps against a :class:`WizardContext`."""

    def __init__(self, context: WizardContext, registry: Mapping[str, Step]) -> None:
        """Bind the executor to *context* and the available *registry*."""
        self.context = context
        self.registry = registry
        self.results: list[StepResult] = []

    def step(self, key: str) -> Step:
        """Return the registered step called *key*."""
        try:
            return self.registry[key]
        except KeyError:
            allowed = ", ".join(sorted(self.registry))
            raise UnknownStepError(f"Unknown step '{key}'. Available: {allowed}.") from None

    def run(
        self,
        keys: Iterable[str],
        *,
        presets: Mapping[str, object] | None = None,
    ) -> list[StepResult]:
        """Run *keys* in order, stopping at the first fatal command failure."""
        return [self.run_step(key, presets=presets) for key in keys]

    def run_step(self, key: str, *, presets: Mapping[str, object] | None = None) -> StepResult:
        """Run one step and return its result.

        Raises :class:`PipelineAbort` when an external command fails.
        """
        step = self.step(key)
        ctx = self.context
        start = len(ctx.runner.history)
        ctx.presets = dict(presets or {})
        with ctx.logger.operation(
            f"step {key}",
            args={"profile": ctx.profile.name, "dry_run": ctx.runner.dry_run, **ctx.presets},
            target={"kind": "step", "key": key},
        ) as op:
            try:
                result = step.handler(ctx)
            except (StepValidationError, PromptError) as exc:
                result = StepResult.aborted(key, str(exc))
            except NginxConfigError as exc:
                result = StepResult.aborted(key, str(exc), kind=StepErrorKind.ENVIRONMENT)
            except CommandError as exc:
                result = StepResult.aborted(key, str(exc), kind=StepErrorKind.COMMAND)
                result.commands = ctx.runner.history[start:]
                self._record_commands(op, result.commands)
                op.error(
                    str(exc),
                    context={"command": exc.result.to_dict(), "kind": exc.kind.value},
                )
                self.results.append(result)
                raise PipelineAbort(key, exc, result) from exc
            finally:
                ctx.presets = {}

            result.commands = ctx.runner.history[start:]
            self._record_commands(op, result.commands)
            context = {"status": result.status.value, **result.context}
            if result.status is StepStatus.COMPLETED:
                op.success(result.message, changed=len(result.commands), context=context)
            elif result.status is StepStatus.ABORTED:
                op.error(result.message, context=context)
            else:
                op.warning(
                    result.message,
                    warnings=[result.message],
                    changed=len(result.commands),
                    context=context,
                )

        self.results.append(result)
        self._report(result)
        return result

    def _record_commands(self, op: OperationScope, commands: list[CommandResult]) -> None:
        for command in commands:
            status = "dry-run" if command.dry_run else ("success" if command.ok else "failed")
            op.add_step(command.command_line, status=status)

    def _report(self, result: StepResult) -> None:
        style = _STATUS_STYLES[result.status]
        self.context.console.print(f"[{style}]{escape(result.message)}[/{style}]")


__all__ = [
    "Pipeline",
    "PipelineAbort",
    "Step",
    "StepErrorKind",
    "StepHandler",
    "StepResult",
    "StepStatus",
    "StepValidationError",
    "UnknownStepError",
    "WizardContext",
    "create_context",
]
