"""MariaDB service bootstrap."""
from __future__ import annotations

from dataclasses import dataclass

from ..runner import CommandResult, CommandRunner
from .systemd import SystemdProvider


@dataclass(slots=True)
class MariaDBProvider:
    """Start MariaDB and run the secure-installation wizard once."""

    runner: CommandRunner
    systemd: SystemdProvider
    service: str = "mariadb"
    mysql_bin: str = "mysql"
    secure_installation_bin: str = "mysql_secure_installation"

    def ensure_service(self) -> None:
        """Start and enable the database service."""
        self.systemd.start(self.service)
        self.systemd.enable(self.service)

    def root_socket_login_works(self) -> bool:
        """Return True when ``sudo mysql -u root`` can run a trivial query."""
        return self.runner.probe(
            [self.mysql_bin, "-u", "root", "-e", "SELECT 1;"],
            sudo=True,
        ).ok

    def secure_installation(self) -> CommandResult:
        """Run ``mysql_secure_installation`` attached to the terminal."""
        return self.runner.run(
            [self.secure_installation_bin],
            sudo=True,
            capture_output=False,
        )


__all__ = ["MariaDBProvider"]
