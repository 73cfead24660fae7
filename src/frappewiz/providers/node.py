"""Helpers for enforcing the minimum Node.js runtime and Yarn."""
from __future__ import annotations

from dataclasses import dataclass

from ..runner import CommandRunner
from .apt import AptProvider


@dataclass(slots=True)
class NodeVersionInfo:
    """Parsed Node version details."""

    raw: str
    version: str
    major: int
    minor: int
    patch: int


@dataclass(slots=True)
class NodeRuntimeManager:
    """Install Node.js from the NodeSource repository when it is too old."""

    runner: CommandRunner
    apt: AptProvider
    setup_url: str = "https://deb.nodesource.com/setup_18.x"
    minimum_major: int = 18
    node_bin: str = "node"
    curl_bin: str = "curl"

    def detect_version(self) -> NodeVersionInfo | None:
        """Return the currently available Node version."""
        if self.runner.which(self.node_bin) is None:
            return None
        result = self.runner.probe([self.node_bin, "-v"])
        if not result.ok:
            return None
        output = result.output()
        if not output:
            return None
        return parse_node_version(output)

    def needs_upgrade(self, info: NodeVersionInfo | None) -> bool:
        """Return True when *info* is missing or below the minimum major version."""
        return info is None or info.major < self.minimum_major

    def install(self) -> None:
        """Run the NodeSource bootstrap script and install ``nodejs``."""
        script = self.runner.run([self.curl_bin, "-fsSL", self.setup_url])
        self.runner.run(["bash", "-"], sudo=True, preserve_env=True, input_text=script.stdout)
        self.apt.install("nodejs")


@dataclass(slots=True)
class YarnManager:
    """Activate Yarn through corepack when it is not on PATH."""

    runner: CommandRunner
    yarn_bin: str = "yarn"
    corepack_bin: str = "corepack"

    def version(self) -> str | None:
        """Return the installed Yarn version, if any."""
        if self.runner.which(self.yarn_bin) is None:
            return None
        result = self.runner.probe([self.yarn_bin, "--version"])
        if not result.ok:
            return None
        return result.output() or None

    def ensure(self) -> bool:
        """Enable Yarn when missing. Returns True when an install was performed."""
        if self.runner.which(self.yarn_bin) is not None:
            return False
        self.runner.run([self.corepack_bin, "enable"], sudo=True)
        self.runner.run([self.corepack_bin, "prepare", "yarn@stable", "--activate"], sudo=True)
        return True


def parse_node_version(value: str) -> NodeVersionInfo:
    """Parse ``node -v`` output such as ``v18.19.1`` or ``v16.x``."""
    raw = value.strip()
    version = raw.lstrip("vV").strip()
    major, minor, patch = _parse_semver(version)
    return NodeVersionInfo(raw=raw, version=version, major=major, minor=minor, patch=patch)


def _parse_semver(value: str) -> tuple[int, int, int]:
    parts = [segment for segment in value.split(".") if segment]
    numbers: list[int] = []
    for segment in parts[:3]:
        try:
            numbers.append(int(segment))
        except ValueError:
            numbers.append(0)
    while len(numbers) < 3:
        numbers.append(0)
    return numbers[0], numbers[1], numbers[2]


__all__ = [
    "NodeRuntimeManager",
    "NodeVersionInfo",
    "YarnManager",
    "parse_node_version",
]
