"""Systemd provider for starting, enabling and reloading system services."""
from __future__ import annotations

from dataclasses import dataclass

from ..runner import CommandResult, CommandRunner


@dataclass(slots=True)
class SystemdProvider:
    """Drive ``systemctl`` for the services the wizard depends on."""

    runner: CommandRunner
    systemctl_bin: str = "systemctl"

    def start(self, service: str) -> CommandResult:
        """Start *service*."""
        return self._systemctl("start", service)

    def enable(self, service: str) -> CommandResult:
        """Enable *service* at boot."""
        return self._systemctl("enable", service)

    def reload(self, service: str) -> CommandResult:
        """Reload *service* configuration."""
        return self._systemctl("reload", service)

    # ------------------------------------------------------------------
    def _systemctl(self, command: str, service: str) -> CommandResult:
        return self.runner.run([self.systemctl_bin, command, service], sudo=True)


__all__ = ["SystemdProvider"]
