"""Tests for the bench, venv, git and SSH providers."""
from __future__ import annotations

from pathlib import Path

import pytest

from frappewiz.providers import (
    BenchProvider,
    GitProvider,
    SshKeyManager,
    VirtualEnvManager,
    activated_environment,
    app_name_from_url,
)
from frappewiz.providers.bench import app_exists, site_exists
from frappewiz.runner import CommandRunner

from .conftest import SubprocessRecorder


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://github.com/frappe/erpnext", "erpnext"),
        ("https://github.com/frappe/hrms.git", "hrms"),
        ("git@github.com:dhwani-ris/frappe_desk_theme.git", "frappe_desk_theme"),
        ("git@bitbucket.org:team/mgrant.git/", "mgrant"),
        ("erpnext", "erpnext"),
    ],
)
def test_app_name_from_url(url: str, expected: str) -> None:
    """App names follow the last path component without ``.git``."""
    assert app_name_from_url(url) == expected


def test_bench_commands_run_in_bench_directory(
    fake_subprocess: SubprocessRecorder,
    tmp_path: Path,
) -> None:
    """Every bench call carries an explicit working directory."""
    bench = BenchProvider(CommandRunner())
    path = tmp_path / "frappe-bench"

    bench.init(tmp_path, "frappe-bench", "version-15")
    bench.new_site(
        path,
        "site1.local",
        db_root_username="root",
        db_root_password="hunter2",
        admin_password="admin",
        force=True,
    )
    bench.get_app(path, "https://github.com/frappe/erpnext", branch="version-15")
    bench.install_app(path, "site1.local", "erpnext")

    assert fake_subprocess.calls == [
        ("bench", "init", "--frappe-branch", "version-15", "frappe-bench"),
        (
            "bench",
            "new-site",
            "site1.local",
            "--force",
            "--db-root-username",
            "root",
            "--db-root-password",
            "hunter2",
            "--admin-password",
            "admin",
        ),
        ("bench", "get-app", "--branch", "version-15", "https://github.com/frappe/erpnext"),
        ("bench", "--site", "site1.local", "install-app", "erpnext"),
    ]
    assert [kwargs["cwd"] for kwargs in fake_subprocess.kwargs] == [
        str(tmp_path),
        str(path),
        str(path),
        str(path),
    ]
    assert all(kwargs["capture_output"] is False for kwargs in fake_subprocess.kwargs)


def test_new_site_without_credentials_lets_bench_prompt(
    fake_subprocess: SubprocessRecorder,
    tmp_path: Path,
) -> None:
    """Missing credentials are left for bench to ask."""
    BenchProvider(CommandRunner()).new_site(tmp_path, "site1.local")

    assert fake_subprocess.calls == [("bench", "new-site", "site1.local")]


def test_fix_asset_permissions(fake_subprocess: SubprocessRecorder, tmp_path: Path) -> None:
    """Assets are chowned to the user and made world readable."""
    bench = BenchProvider(CommandRunner())

    bench.fix_asset_permissions(tmp_path, "frappe")

    assets = str(tmp_path / "sites" / "assets")
    assert (tmp_path / "sites" / "assets").is_dir()
    assert fake_subprocess.calls == [
        ("sudo", "chown", "-R", "frappe:frappe", assets),
        ("sudo", "chmod", "-R", "755", assets),
        ("sudo", "find", assets, "-type", "f", "-exec", "chmod", "644", "{}", "+"),
    ]


def test_site_and_app_existence(tmp_path: Path) -> None:
    """Sites need a site_config.json and apps a directory."""
    (tmp_path / "sites" / "site1.local").mkdir(parents=True)
    (tmp_path / "apps" / "erpnext").mkdir(parents=True)

    assert site_exists(tmp_path, "site1.local") is False
    (tmp_path / "sites" / "site1.local" / "site_config.json").write_text("{}")
    assert site_exists(tmp_path, "site1.local") is True
    assert app_exists(tmp_path, "erpnext") is True
    assert app_exists(tmp_path, "hrms") is False


def test_venv_created_and_missing_packages_installed(
    fake_subprocess: SubprocessRecorder,
    tmp_path: Path,
) -> None:
    """Only packages missing from ``pip show`` are installed."""
    venv_dir = tmp_path / "venv"
    pip = str(venv_dir / "bin" / "pip")
    fake_subprocess.respond("python3", "-m", "venv", effect=lambda: venv_dir.mkdir())
    fake_subprocess.respond(pip, "show", returncode=1)
    fake_subprocess.respond(pip, "show", "wheel")
    manager = VirtualEnvManager(CommandRunner(), venv_dir)

    result = manager.ensure(["pip", "wheel", "frappe-bench"])

    assert result.created is True
    assert result.installed == ["pip", "frappe-bench"]
    assert fake_subprocess.find(str(venv_dir / "bin" / "python")) == [
        (str(venv_dir / "bin" / "python"), "-m", "ensurepip")
    ]
    assert fake_subprocess.find(pip, "install") == [(pip, "install", "frappe-bench")]


def test_venv_upgrade_installs_everything_at_once(
    fake_subprocess: SubprocessRecorder,
    tmp_path: Path,
) -> None:
    """Upgrade mode runs a single ``pip install --upgrade``."""
    venv_dir = tmp_path / "venv"
    venv_dir.mkdir()
    manager = VirtualEnvManager(CommandRunner(), venv_dir)

    result = manager.ensure(["pip", "wheel", "frappe-bench"], upgrade=True)

    assert result.created is False
    assert result.upgraded is True
    assert fake_subprocess.calls == [
        (str(venv_dir / "bin" / "pip"), "install", "--upgrade", "pip", "wheel", "frappe-bench")
    ]


def test_activated_environment(tmp_path: Path) -> None:
    """An existing venv is prepended to PATH unless one is already active."""
    venv_dir = tmp_path / "venv"
    base = {"PATH": "/usr/bin", "PYTHONHOME": "/opt/python"}

    assert activated_environment(base, venv_dir) == base

    venv_dir.mkdir()
    env = activated_environment(base, venv_dir)
    assert env["VIRTUAL_ENV"] == str(venv_dir)
    assert env["PATH"].startswith(str(venv_dir / "bin"))
    assert env["PATH"].endswith("/usr/bin")
    assert "PYTHONHOME" not in env
    assert base == {"PATH": "/usr/bin", "PYTHONHOME": "/opt/python"}

    active = {"PATH": "/usr/bin", "VIRTUAL_ENV": "/elsewhere"}
    assert activated_environment(active, venv_dir) == active


def test_git_global_config(fake_subprocess: SubprocessRecorder) -> None:
    """Unset keys read as None and values are written globally."""
    fake_subprocess.respond("git", "config", "--global", "user.name", returncode=1)
    fake_subprocess.respond("git", "config", "--global", "user.email", stdout="a@b.c\n")
    git = GitProvider(CommandRunner())

    assert git.get_global("user.name") is None
    assert git.get_global("user.email") == "a@b.c"
    git.set_global("user.name", "Ada")

    assert fake_subprocess.calls[-1] == ("git", "config", "--global", "user.name", "Ada")


def test_git_publish_pushes_new_app(fake_subprocess: SubprocessRecorder, tmp_path: Path) -> None:
    """publish commits, adds the remote and pushes main."""
    repo = tmp_path / "apps" / "custom"

    GitProvider(CommandRunner()).publish(repo, "git@github.com:org/custom.git")

    assert fake_subprocess.calls == [
        ("git", "add", "."),
        ("git", "commit", "-m", "Initial commit"),
        ("git", "remote", "add", "origin", "git@github.com:org/custom.git"),
        ("git", "push", "-u", "origin", "main"),
    ]
    assert {kwargs["cwd"] for kwargs in fake_subprocess.kwargs} == {str(repo)}


def test_ssh_key_generation(fake_subprocess: SubprocessRecorder, tmp_path: Path) -> None:
    """ssh-keygen writes an unencrypted RSA key and the public half is readable."""
    key = tmp_path / "ssh" / "id_rsa"

    def _write_keys() -> None:
        key.write_text("PRIVATE")
        key.with_name("id_rsa.pub").write_text("ssh-rsa AAAA frappe@host\n")

    fake_subprocess.respond("ssh-keygen", effect=_write_keys)
    manager = SshKeyManager(CommandRunner(), key)

    assert manager.exists() is False
    assert manager.public_key() is None
    manager.generate()

    assert fake_subprocess.calls == [
        ("ssh-keygen", "-t", "rsa", "-b", "4096", "-f", str(key), "-N", "")
    ]
    assert manager.exists() is True
    assert manager.public_key() == "ssh-rsa AAAA frappe@host"


def test_ssh_overwrite_removes_old_key(fake_subprocess: SubprocessRecorder, tmp_path: Path) -> None:
    """Overwriting deletes the previous pair so ssh-keygen does not prompt."""
    key = tmp_path / "ssh" / "id_rsa"
    key.parent.mkdir()
    key.write_text("OLD")
    key.with_name("id_rsa.pub").write_text("ssh-rsa OLD")

    SshKeyManager(CommandRunner(), key).generate(overwrite=True)

    assert not key.exists()
    assert not key.with_name("id_rsa.pub").exists()
