"""Typer-powered command line entry point for ``frappewiz``.

Running ``frappewiz`` without a subcommand opens the interactive menu of the
configured profile. Individual steps can be run directly with
``frappewiz step <key>``; ``--answers`` feeds prompts from a YAML file so the
wizard can run unattended.
"""
from __future__ import annotations

import os
import textwrap
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .logging import StructuredLogger
from .menu import run_menu
from .pipeline import Pipeline, PipelineAbort, StepStatus, UnknownStepError, create_context
from .profiles import build_menu
from .prompts import ConsolePrompter, PromptError, Prompter, ScriptedPrompter
from .providers import activated_environment
from .runner import CommandRunner
from .steps import REGISTRY

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to frappewiz's YAML config file.",
)

ANSWERS_OPTION = typer.Option(
    None,
    "--answers",
    envvar="FRAPPEWIZ_ANSWERS",
    dir_okay=False,
    help="YAML file of prompt answers keyed by prompt key (non-interactive runs).",
)

DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Log mutating commands instead of executing them.",
)

PROFILE_OPTION = typer.Option(
    None,
    "--profile",
    "-p",
    help="Menu profile to use (classic|enhanced or any configured profile).",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit configuration as JSON instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Frappe self-hosting setup wizard.

        Installs system packages, Node/Yarn, the bench CLI and MariaDB, creates
        benches and sites, and wires supervisor, nginx and TLS for production.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the resolved configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Config, logger, runner and prompter built once per invocation."""

    config: AppConfig
    logger: StructuredLogger
    runner: CommandRunner
    prompter: Prompter
    profile: str | None = None


def _effective_uid() -> int:
    return os.geteuid()


def _refuse_superuser() -> None:
    if _effective_uid() == 0:
        console.print("[red]Don't run frappewiz as root.[/red]")
        raise typer.Exit(code=ExitCode.FAILURE)


def _fatal(message: str) -> NoReturn:
    console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=ExitCode.FAILURE)


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    answers: Path | None,
    dry_run: bool,
    profile: str | None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
        if profile is not None:
            config.profile(profile)
        prompter: Prompter = (
            ScriptedPrompter.from_file(answers) if answers is not None else ConsolePrompter()
        )
    except (ConfigError, PromptError) as exc:
        _fatal(str(exc))

    runner = CommandRunner(
        env=activated_environment(os.environ, config.venv_dir),
        dry_run=dry_run,
        sudo_bin=config.sudo_bin,
    )
    runtime = RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        runner=runner,
        prompter=prompter,
        profile=profile,
    )
    ctx.obj = runtime
    return runtime


def _runtime(ctx: typer.Context) -> RuntimeContext:
    """Return the runtime built by the root callback."""
    return _ensure_runtime(ctx, None, None, False, None)


def _build_pipeline(runtime: RuntimeContext, profile_name: str | None) -> Pipeline:
    try:
        profile = runtime.config.profile(profile_name or runtime.profile)
    except ConfigError as exc:
        _fatal(str(exc))
    context = create_context(
        runtime.config,
        profile,
        prompter=runtime.prompter,
        runner=runtime.runner,
        logger=runtime.logger,
        console=console,
    )
    return Pipeline(context, REGISTRY)


def _run_guarded(action: Callable[[], ExitCode]) -> NoReturn:
    """Run *action* and exit with its code, turning fatal errors into exit 1."""
    try:
        code = action()
    except (PipelineAbort, PromptError, UnknownStepError) as exc:
        _fatal(str(exc))
    raise typer.Exit(code=int(code))


def _launch_menu(runtime: RuntimeContext, profile_name: str | None, skip_startup: bool) -> NoReturn:
    pipeline = _build_pipeline(runtime, profile_name)

    def action() -> ExitCode:
        profile = pipeline.context.profile
        console.print(f"[bold green]{profile.title}[/bold green]")
        if not skip_startup:
            pipeline.run(profile.startup_steps)
        return run_menu(pipeline, build_menu(profile))

    _run_guarded(action)


@app.callback(invoke_without_command=True)
def _root(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the frappewiz version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    answers: Path | None = ANSWERS_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    profile: str | None = PROFILE_OPTION,
) -> None:
    """Resolve configuration, then open the menu when no command is given."""
    if version:
        console.print(f"frappewiz {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _refuse_superuser()
    runtime = _ensure_runtime(ctx, config_file, answers, dry_run, profile)

    if ctx.invoked_subcommand is None:
        _launch_menu(runtime, None, skip_startup=False)


@app.command("menu")
def menu_command(
    ctx: typer.Context,
    profile: str | None = PROFILE_OPTION,
    skip_startup: bool = typer.Option(
        False,
        "--skip-startup",
        help="Do not run the profile's startup steps before showing the menu.",
    ),
) -> None:
    """Open the interactive setup menu."""
    _launch_menu(_runtime(ctx), profile, skip_startup)


@app.command("step")
def step_command(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Step key (see `frappewiz steps`)."),
    profile: str | None = PROFILE_OPTION,
) -> None:
    """Run a single provisioning step."""
    runtime = _runtime(ctx)
    pipeline = _build_pipeline(runtime, profile)

    def action() -> ExitCode:
        result = pipeline.run_step(key)
        if result.status is StepStatus.ABORTED:
            return ExitCode.FAILURE
        return ExitCode.OK

    _run_guarded(action)


def _two_column_table(value_header: str) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Key", style="bold", no_wrap=True)
    table.add_column(value_header)
    return table


def _flatten(data: dict[str, object], prefix: str = "") -> list[tuple[str, str]]:
    """Return ``(dotted.key, text)`` rows for a nested mapping."""
    rows: list[tuple[str, str]] = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{name}."))
        elif isinstance(value, list):
            rows.append((name, ", ".join(str(item) for item in value)))
        else:
            rows.append((name, "-" if value is None else str(value)))
    return rows


@app.command("steps")
def steps_command(ctx: typer.Context) -> None:
    """List the available provisioning steps."""
    runtime = _runtime(ctx)
    with runtime.logger.operation("steps", target={"kind": "meta"}) as op:
        table = _two_column_table("Title")
        for key, step in REGISTRY.items():
            table.add_row(key, step.title)
        console.print(table)
        op.success("Listed steps.", changed=0, context={"count": len(REGISTRY)})


@config_app.command("show")
def config_show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Print the configuration frappewiz resolved from all sources."""
    runtime = _runtime(ctx)
    resolved = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show", args={"json": json_output}, target={"kind": "config"}
    ) as op:
        if json_output:
            console.print_json(data=resolved)
        else:
            table = _two_column_table("Value")
            for key, text in _flatten(resolved):
                table.add_row(key, escape(text))
            console.print(table)
        op.success("Printed resolved configuration.", changed=0)


def main() -> None:
    """Run the ``frappewiz`` application."""
    app()


__all__ = ["app", "main"]
