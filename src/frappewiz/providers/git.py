"""SSH key and git identity providers."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandResult, CommandRunner


@dataclass(slots=True)
class SshKeyManager:
    """Generate the operator's RSA key pair for private repositories."""

    runner: CommandRunner
    key_path: Path
    keygen_bin: str = "ssh-keygen"

    @property
    def public_key_path(self) -> Path:
        """Return the path of the public half of the key pair."""
        return self.key_path.with_name(f"{self.key_path.name}.pub")

    def exists(self) -> bool:
        """Return True when the private key is already present."""
        return self.key_path.exists()

    def generate(self, *, overwrite: bool = False) -> CommandResult:
        """Generate a 4096-bit RSA key without a passphrase.

        A dry run leaves ``~/.ssh`` untouched and only logs ``ssh-keygen``.
        """
        command = [self.keygen_bin, "-t", "rsa", "-b", "4096", "-f", str(self.key_path), "-N", ""]
        if not self.runner.dry_run:
            self.key_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            if overwrite:
                self.key_path.unlink(missing_ok=True)
                self.public_key_path.unlink(missing_ok=True)
        return self.runner.run(command)

    def public_key(self) -> str | None:
        """Return the public key text, when readable."""
        try:
            return self.public_key_path.read_text(encoding="utf-8").strip()
        except OSError:
            return None


@dataclass(slots=True)
class GitProvider:
    """Read and write git configuration and publish new app repositories."""

    runner: CommandRunner
    git_bin: str = "git"

    def get_global(self, key: str) -> str | None:
        """Return the global value of *key*, or None when unset."""
        result = self.runner.probe([self.git_bin, "config", "--global", key])
        if not result.ok:
            return None
        return result.output() or None

    def set_global(self, key: str, value: str) -> CommandResult:
        """Set *key* in the global git configuration."""
        return self.runner.run([self.git_bin, "config", "--global", key, value])

    def set_local(self, repo: Path, key: str, value: str) -> CommandResult:
        """Set *key* in the repository configuration of *repo*."""
        return self.runner.run([self.git_bin, "config", key, value], cwd=repo)

    def is_repository(self, path: Path) -> bool:
        """Return True when *path* holds a ``.git`` directory."""
        return (path / ".git").is_dir()

    def publish(self, repo: Path, remote_url: str, *, branch: str = "main") -> None:
        """Commit everything in *repo* and push it to *remote_url*."""
        self.runner.run([self.git_bin, "add", "."], cwd=repo)
        self.runner.run([self.git_bin, "commit", "-m", "Initial commit"], cwd=repo)
        self.runner.run([self.git_bin, "remote", "add", "origin", remote_url], cwd=repo)
        self.runner.run(
            [self.git_bin, "push", "-u", "origin", branch],
            cwd=repo,
            capture_output=False,
        )


__all__ = ["GitProvider", "SshKeyManager"]
