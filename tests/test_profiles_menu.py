"""Tests for menu layouts and the menu loop."""
from __future__ import annotations

from collections.abc import Callable

import pytest

from frappewiz.exit_codes import ExitCode
from frappewiz.menu import run_menu
from frappewiz.pipeline import PipelineAbort
from frappewiz.profiles import build_menu

from .conftest import Harness, SubprocessRecorder


def test_classic_menu_layout(make_harness: Callable[..., Harness]) -> None:
    """The classic profile offers eight entries including the secondary bench."""
    profile = make_harness("classic").context.profile

    menu = build_menu(profile)

    assert [item.label for item in menu.items] == [
        "Setup SSH and Git Configuration",
        "Setup Site",
        "Setup Default Frappe Bench (frappe-bench)",
        "Setup mgrant-bench",
        "Setup Site on mgrant-bench",
        "Only Get App",
        "Setup Production (Supervisor + Nginx + SSL)",
        "Exit",
    ]
    assert menu.items[3].presets == {"bench.name": "mgrant-bench"}
    assert menu.items[4].presets == {"site.bench": "mgrant-bench"}
    assert menu.prompt() == "Choose an option [1-8]"


def test_classic_menu_without_secondary_bench(make_harness: Callable[..., Harness]) -> None:
    """Dropping the secondary bench removes its two entries."""
    harness = make_harness(profiles={"classic": {"secondary_bench": None}})

    menu = build_menu(harness.context.profile)

    assert len(menu.items) == 6
    assert menu.items[-1].exit is True


def test_enhanced_menu_layout(make_harness: Callable[..., Harness]) -> None:
    """The enhanced profile offers four entries."""
    menu = build_menu(make_harness("enhanced").context.profile)

    assert [item.label for item in menu.items][1:] == ["Create Bench", "Create Site", "Exit"]
    assert menu.items[0].steps[0] == "install-deps"
    assert menu.farewell == "Thanks for using Frappe Setup Wizard!"


@pytest.mark.parametrize(("raw", "index"), [("1", 0), (" 4 ", 3), ("0", None), ("x", None)])
def test_menu_choice_parsing(
    make_harness: Callable[..., Harness],
    raw: str,
    index: int | None,
) -> None:
    """Choices are 1-based; anything else is invalid."""
    menu = build_menu(make_harness("enhanced").context.profile)

    expected = menu.items[index] if index is not None else None
    assert menu.choice(raw) == expected


def test_invalid_choice_then_exit(
    make_harness: Callable[..., Harness],
    fake_subprocess: SubprocessRecorder,
) -> None:
    """Invalid input re-prompts; the exit item ends the loop."""
    harness = make_harness("enhanced", {"menu.choice": ["9", "abc", "4"]})

    code = run_menu(harness.pipeline, build_menu(harness.context.profile))

    assert code is ExitCode.OK
    assert harness.text.count("Invalid option. Please try again.") == 2
    assert "Thanks for using Frappe Setup Wizard!" in harness.text
    assert fake_subprocess.calls == []


def test_aborted_step_returns_to_menu(
    make_harness: Callable[..., Harness],
    fake_subprocess: SubprocessRecorder,
) -> None:
    """A validation failure prints the message and shows the menu again."""
    harness = make_harness("enhanced", {"menu.choice": ["3", "4"], "site.bench": ""})

    code = run_menu(harness.pipeline, build_menu(harness.context.profile))

    assert code is ExitCode.OK
    assert "Bench name cannot be empty" in harness.text
    assert harness.text.count("Frappe Setup Wizard\n") >= 2


def test_menu_presets_select_bench(
    make_harness: Callable[..., Harness],
    fake_subprocess: SubprocessRecorder,
) -> None:
    """The secondary bench entry initialises that bench without asking its name."""
    harness = make_harness(
        "classic",
        {"menu.choice": ["4", "8"], "bench.get_apps": False},
    )

    run_menu(harness.pipeline, build_menu(harness.context.profile))

    assert fake_subprocess.find("bench", "init") == [
        ("bench", "init", "--frappe-branch", "version-15", "mgrant-bench")
    ]


def test_command_failure_leaves_menu(
    make_harness: Callable[..., Harness],
    fake_subprocess: SubprocessRecorder,
) -> None:
    """A failing external command is fatal for the whole menu."""
    fake_subprocess.respond("bench", "init", returncode=1, stderr="git clone failed")
    harness = make_harness("classic", {"menu.choice": ["3", "8"]})

    with pytest.raises(PipelineAbort, match="Error during step 'init-bench'"):
        run_menu(harness.pipeline, build_menu(harness.context.profile))
