"""Tests for scripted and interactive prompters."""
from __future__ import annotations

from pathlib import Path

import pytest

from frappewiz.prompts import ConsolePrompter, PromptError, ScriptedPrompter


def test_scalar_answer_repeats() -> None:
    """A scalar answer is returned every time its key is asked."""
    prompter = ScriptedPrompter({"bench.name": "erp-bench"})

    assert prompter.ask("bench.name", "Bench?") == "erp-bench"
    assert prompter.ask("bench.name", "Bench?") == "erp-bench"
    assert prompter.asked == ["bench.name", "bench.name"]


def test_list_answers_are_consumed_then_fall_back() -> None:
    """List answers are used once each, then the default applies."""
    prompter = ScriptedPrompter({"menu.choice": ["3", 8]})

    assert prompter.ask("menu.choice", "Choice") == "3"
    assert prompter.ask("menu.choice", "Choice") == "8"
    assert prompter.ask("apps.url", "URL", default="done") == "done"
    with pytest.raises(PromptError, match="No answer provided for 'menu.choice'"):
        prompter.ask("menu.choice", "Choice")


def test_missing_answer_without_default_raises() -> None:
    """Unanswered questions without a default cannot continue."""
    prompter = ScriptedPrompter({})

    with pytest.raises(PromptError, match="site.name"):
        prompter.ask("site.name", "Site name")


def test_blank_answer_uses_default_when_available() -> None:
    """An empty scripted answer yields the default, or empty text without one."""
    prompter = ScriptedPrompter({"bench.name": "  ", "site.name": ""})

    assert prompter.ask("bench.name", "Bench?", default="frappe-bench") == "frappe-bench"
    assert prompter.ask("site.name", "Site?") == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [(True, True), (False, False), ("y", True), ("Yes", True), ("no", False), (1, True)],
)
def test_confirm_parses_answers(value: object, expected: bool) -> None:
    """Booleans and yes/no strings are understood."""
    prompter = ScriptedPrompter({"ssh.overwrite": value})

    assert prompter.confirm("ssh.overwrite", "Overwrite?") is expected


def test_confirm_without_answer_uses_default() -> None:
    """Unanswered confirmations return their default."""
    prompter = ScriptedPrompter()

    assert prompter.confirm("dev.start", "Start?") is False
    assert prompter.confirm("ssl.enable", "SSL?", default=True) is True


def test_from_file_reads_yaml(tmp_path: Path) -> None:
    """Answers load from a YAML mapping."""
    answers = tmp_path / "answers.yml"
    answers.write_text("menu.choice: ['2', '8']\nsite.name: site1.local\n")

    prompter = ScriptedPrompter.from_file(answers)

    assert prompter.ask("site.name", "Site") == "site1.local"
    assert prompter.ask("menu.choice", "Choice") == "2"


def test_from_file_rejects_non_mapping(tmp_path: Path) -> None:
    """A YAML list is not a valid answers file."""
    answers = tmp_path / "answers.yml"
    answers.write_text("- a\n")

    with pytest.raises(PromptError, match="must contain a mapping"):
        ScriptedPrompter.from_file(answers)


def test_from_file_reports_missing_file(tmp_path: Path) -> None:
    """An unreadable answers file raises PromptError."""
    with pytest.raises(PromptError, match="Failed to read answers file"):
        ScriptedPrompter.from_file(tmp_path / "missing.yml")


def test_console_prompter_uses_typer(monkeypatch: pytest.MonkeyPatch) -> None:
    """ConsolePrompter forwards to typer.prompt and typer.confirm."""
    captured: dict[str, object] = {}

    def fake_prompt(message: str, **kwargs: object) -> str:
        captured["message"] = message
        captured.update(kwargs)
        return "  s3cret  "

    monkeypatch.setattr("typer.prompt", fake_prompt)
    monkeypatch.setattr("typer.confirm", lambda message, default=False: True)
    prompter = ConsolePrompter()

    assert prompter.ask("site.admin_password", "Admin password", secret=True) == "s3cret"
    assert captured["hide_input"] is True
    assert captured["default"] == ""
    assert captured["show_default"] is False
    assert prompter.confirm("ssl.enable", "Enable SSL?") is True
