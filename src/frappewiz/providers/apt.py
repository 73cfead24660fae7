"""Debian package provider backed by ``dpkg`` and ``apt``."""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from ..models import InstallTarget
from ..runner import CommandResult, CommandRunner


@dataclass(slots=True)
class AptEnsureResult:
    """Outcome of ensuring a set of packages."""

    already_installed: list[str] = field(default_factory=list)
    installed: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AptProvider:
    """Query and install system packages one at a time."""

    runner: CommandRunner
    dpkg_bin: str = "dpkg"
    apt_bin: str = "apt"

    def is_installed(self, package: str) -> bool:
        """Return True when ``dpkg -s`` reports *package* as installed."""
        return self.runner.probe([self.dpkg_bin, "-s", package]).ok

    def install(self, *packages: str) -> CommandResult:
        """Install *packages* non-interactively."""
        return self.runner.run([self.apt_bin, "install", "-y", *packages], sudo=True)

    def ensure(
        self,
        packages: Iterable[str],
        *,
        on_status: Callable[[InstallTarget], None] | None = None,
    ) -> AptEnsureResult:
        """Install each package of *packages* that is not yet present.

        *on_status* receives each package state before it is acted upon.
        """
        result = AptEnsureResult()
        for package in packages:
            target = InstallTarget(package=package, installed=self.is_installed(package))
            if on_status is not None:
                on_status(target)
            if target.installed:
                result.already_installed.append(package)
                continue
            self.install(package)
            result.installed.append(package)
        return result


__all__ = ["AptEnsureResult", "AptProvider"]
