"""Python virtual environment holding the ``bench`` CLI."""
from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from ..runner import CommandRunner


@dataclass(slots=True)
class VenvEnsureResult:
    """Outcome of :meth:`VirtualEnvManager.ensure`."""

    created: bool
    installed: list[str] = field(default_factory=list)
    upgraded: bool = False


@dataclass(slots=True)
class VirtualEnvManager:
    """Create the wizard's virtualenv and keep its tooling installed."""

    runner: CommandRunner
    venv_dir: Path
    python_bin: str = "python3"

    @property
    def bin_dir(self) -> Path:
        """Return the virtualenv's executable directory."""
        return self.venv_dir / "bin"

    @property
    def pip(self) -> str:
        """Return the path to the virtualenv's pip."""
        return str(self.bin_dir / "pip")

    def exists(self) -> bool:
        """Return True when the virtualenv has been created."""
        return self.venv_dir.is_dir()

    def create(self) -> None:
        """Create the virtualenv."""
        self.runner.run([self.python_bin, "-m", "venv", str(self.venv_dir)])

    def has_package(self, name: str) -> bool:
        """Return True when ``pip show`` finds *name* inside the virtualenv."""
        return self.runner.probe([self.pip, "show", name]).ok

    def ensure(self, packages: Iterable[str], *, upgrade: bool = False) -> VenvEnsureResult:
        """Create the virtualenv if needed and install *packages* into it.

        With ``upgrade`` every package is (re)installed with ``--upgrade`` in a
        single pip call; otherwise only packages missing from ``pip show`` are
        installed.
        """
        created = False
        if not self.exists():
            self.create()
            created = True
        wanted = list(packages)
        if upgrade:
            self.runner.run([self.pip, "install", "--upgrade", *wanted])
            return VenvEnsureResult(created=created, installed=wanted, upgraded=True)

        installed: list[str] = []
        for package in wanted:
            if self.has_package(package):
                continue
            if package == "pip":
                self.runner.run([str(self.bin_dir / "python"), "-m", "ensurepip"])
            else:
                self.runner.run([self.pip, "install", package])
            installed.append(package)
        return VenvEnsureResult(created=created, installed=installed)


def activated_environment(environ: Mapping[str, str], venv_dir: Path) -> dict[str, str]:
    """Return *environ* with *venv_dir* activated for child processes.

    An environment that already has ``VIRTUAL_ENV`` set, or a virtualenv that
    does not exist yet, leaves the environment untouched.
    """
    env = dict(environ)
    if env.get("VIRTUAL_ENV") or not venv_dir.is_dir():
        return env
    bin_dir = venv_dir / "bin"
    env["VIRTUAL_ENV"] = str(venv_dir)
    existing = env.get("PATH", "")
    env["PATH"] = f"{bin_dir}{os.pathsep}{existing}" if existing else str(bin_dir)
    env.pop("PYTHONHOME", None)
    return env


__all__ = ["VenvEnsureResult", "VirtualEnvManager", "activated_environment"]
