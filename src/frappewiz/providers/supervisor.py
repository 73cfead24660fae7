"""Supervisor provider for bench process groups."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandResult, CommandRunner


@dataclass(slots=True)
class SupervisorProvider:
    """Link bench supervisor configs and ask supervisord to pick them up."""

    runner: CommandRunner
    conf_dir: Path = Path("/etc/supervisor/conf.d")
    supervisorctl_bin: str = "supervisorctl"

    def bench_config_path(self, bench: Path) -> Path:
        """Return the supervisor config generated inside *bench*."""
        return bench / "config" / "supervisor.conf"

    def conf_link_path(self, bench_name: str) -> Path:
        """Return the system path the bench config is linked to."""
        safe = bench_name.replace("/", "-")
        return self.conf_dir / f"{safe}.conf"

    def link(self, bench: Path, bench_name: str) -> CommandResult:
        """Symlink the bench config into supervisor's ``conf.d`` directory."""
        return self.runner.run(
            ["ln", "-sf", str(self.bench_config_path(bench)), str(self.conf_link_path(bench_name))],
            sudo=True,
        )

    def reread(self) -> CommandResult:
        """Re-read configuration files."""
        return self._supervisorctl("reread")

    def update(self) -> CommandResult:
        """Apply configuration changes, starting new process groups."""
        return self._supervisorctl("update")

    # ------------------------------------------------------------------
    def _supervisorctl(self, *args: str) -> CommandResult:
        return self.runner.run([self.supervisorctl_bin, *args], sudo=True)


__all__ = ["SupervisorProvider"]
