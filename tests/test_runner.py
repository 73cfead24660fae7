"""Tests for external command execution."""
from __future__ import annotations

from pathlib import Path

import pytest

from frappewiz.runner import (
    CommandError,
    CommandErrorKind,
    CommandRunner,
    redact_command,
)

from .conftest import SubprocessRecorder


def test_run_captures_output_and_cwd(fake_subprocess: SubprocessRecorder, tmp_path: Path) -> None:
    """Successful commands return their captured output."""
    fake_subprocess.respond("bench", "--version", stdout="5.22.6\n")
    runner = CommandRunner(env={"PATH": "/usr/bin"})

    result = runner.run(["bench", "--version"], cwd=tmp_path)

    assert result.ok
    assert result.output() == "5.22.6"
    assert result.cwd == tmp_path
    kwargs = fake_subprocess.kwargs[0]
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["env"] == {"PATH": "/usr/bin"}
    assert kwargs["capture_output"] is True
    assert kwargs["check"] is False
    assert runner.history == [result]


def test_run_raises_on_non_zero_exit(fake_subprocess: SubprocessRecorder) -> None:
    """A failing command raises CommandError carrying the result."""
    fake_subprocess.respond("sudo", "apt", returncode=100, stderr="E: Unable to locate package")
    runner = CommandRunner()

    with pytest.raises(CommandError) as excinfo:
        runner.run(["apt", "install", "-y", "nopkg"], sudo=True)

    error = excinfo.value
    assert error.kind is CommandErrorKind.EXIT_STATUS
    assert error.result.returncode == 100
    assert "sudo apt install -y nopkg failed (exit 100)" in str(error)
    assert "Unable to locate package" in str(error)


def test_missing_binary_is_classified(fake_subprocess: SubprocessRecorder) -> None:
    """FileNotFoundError becomes a missing-binary failure."""
    fake_subprocess.respond("bench", missing=True)
    runner = CommandRunner()

    with pytest.raises(CommandError) as excinfo:
        runner.run(["bench", "init", "x"])

    assert excinfo.value.kind is CommandErrorKind.MISSING_BINARY
    assert excinfo.value.result.returncode == 127
    assert "bench not found" in str(excinfo.value)


def test_check_false_returns_failed_result(fake_subprocess: SubprocessRecorder) -> None:
    """check=False hands back the failure instead of raising."""
    fake_subprocess.respond("false", returncode=1)
    result = CommandRunner().run(["false"], check=False)

    assert not result.ok
    assert result.error_kind is CommandErrorKind.EXIT_STATUS


def test_dry_run_skips_mutating_commands(fake_subprocess: SubprocessRecorder) -> None:
    """Dry runs record the command without executing it."""
    runner = CommandRunner(dry_run=True)

    result = runner.run(["apt", "install", "-y", "curl"], sudo=True)

    assert fake_subprocess.calls == []
    assert result.dry_run is True
    assert result.args == ("sudo", "apt", "install", "-y", "curl")
    assert runner.history == [result]


def test_probe_executes_during_dry_run_and_never_raises(
    fake_subprocess: SubprocessRecorder,
) -> None:
    """Probes always run and report failures through the result."""
    fake_subprocess.respond("dpkg", "-s", returncode=1)
    runner = CommandRunner(dry_run=True)

    result = runner.probe(["dpkg", "-s", "nginx"])

    assert not result.ok
    assert fake_subprocess.calls == [("dpkg", "-s", "nginx")]


def test_sudo_preserve_env_and_stdin(fake_subprocess: SubprocessRecorder) -> None:
    """preserve_env adds -E and input_text is piped to the process."""
    runner = CommandRunner(sudo_bin="doas")

    runner.run(["bash", "-"], sudo=True, preserve_env=True, input_text="echo hi\n")

    assert fake_subprocess.calls == [("doas", "-E", "bash", "-")]
    assert fake_subprocess.kwargs[0]["input"] == "echo hi\n"


def test_attached_commands_do_not_capture(fake_subprocess: SubprocessRecorder) -> None:
    """capture_output=False leaves the terminal attached."""
    CommandRunner().run(["bench", "start"], capture_output=False)

    assert fake_subprocess.kwargs[0]["capture_output"] is False


def test_which_uses_runner_path(monkeypatch: pytest.MonkeyPatch) -> None:
    """which() searches the runner's PATH rather than the process PATH."""
    seen: dict[str, object] = {}

    def _which(name: str, mode: int = 0, path: str | None = None) -> str | None:
        seen["path"] = path
        return f"/venv/bin/{name}"

    monkeypatch.setattr("shutil.which", _which)
    runner = CommandRunner(env={"PATH": "/venv/bin:/usr/bin"})

    assert runner.which("bench") == "/venv/bin/bench"
    assert seen["path"] == "/venv/bin:/usr/bin"


def test_redact_command_masks_secret_options() -> None:
    """Values of password-like options are masked for display."""
    args = [
        "bench",
        "new-site",
        "site1.local",
        "--db-root-password",
        "hunter2",
        "--admin-password=letmein",
        "--db-root-username",
        "root",
    ]

    shown = redact_command(args)

    assert "hunter2" not in shown
    assert "letmein" not in shown
    assert "--db-root-password ***" in shown
    assert "--admin-password=***" in shown
    assert "--db-root-username root" in shown


def test_command_error_message_is_redacted(fake_subprocess: SubprocessRecorder) -> None:
    """Failure messages never echo credentials."""
    fake_subprocess.respond("bench", returncode=1, stderr="Access denied")

    with pytest.raises(CommandError) as excinfo:
        CommandRunner().run(["bench", "new-site", "a", "--db-root-password", "hunter2"])

    assert "hunter2" not in str(excinfo.value)
    assert "hunter2" not in str(excinfo.value.result.to_dict())
