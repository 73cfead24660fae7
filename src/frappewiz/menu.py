"""Interactive menu loop."""
from __future__ import annotations

from .exit_codes import ExitCode
from .pipeline import Pipeline
from .profiles import Menu

_RULE = "=" * 51


def run_menu(pipeline: Pipeline, menu: Menu) -> ExitCode:
    """Present *menu* until the operator picks its exit item.

    Aborted and skipped steps return to the menu. A failing external command
    propagates as :class:`~frappewiz.pipeline.PipelineAbort`.
    """
    ctx = pipeline.context
    console = ctx.console
    while True:
        console.print(f"\n[bold green]{_RULE}[/bold green]")
        console.print(f"[bold green]{menu.title}[/bold green]")
        console.print(f"[bold green]{_RULE}[/bold green]")
        for number, item in enumerate(menu.items, start=1):
            console.print(f"{number}) {item.label}")
        raw = ctx.prompter.ask("menu.choice", menu.prompt(), default=None)
        item = menu.choice(raw)
        if item is None:
            console.print("[red]Invalid option. Please try again.[/red]")
            continue
        if item.exit:
            console.print(f"\n[bold blue]{menu.farewell}[/bold blue]")
            return ExitCode.OK
        pipeline.run(item.steps, presets=item.presets)


__all__ = ["run_menu"]
