"""Nginx provider wiring bench-generated configs into the system nginx."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..nginx_config import NginxConfig, NginxConfigError
from ..runner import CommandResult, CommandRunner
from .systemd import SystemdProvider


@dataclass(slots=True)
class NginxPatchResult:
    """Outcome of patching a bench nginx configuration."""

    path: Path
    replaced: int
    access_logs_fixed: int
    alias: Path


@dataclass(slots=True)
class NginxProvider:
    """Patch, link, validate and reload nginx site configurations."""

    runner: CommandRunner
    systemd: SystemdProvider
    conf_dir: Path = Path("/etc/nginx/conf.d")
    nginx_bin: str = "nginx"

    def bench_config_path(self, bench: Path) -> Path:
        """Return the nginx config generated inside *bench*."""
        return bench / "config" / "nginx.conf"

    def conf_link_path(self, bench_name: str) -> Path:
        """Return the system path the bench config is linked to."""
        safe = bench_name.replace("/", "-")
        return self.conf_dir / f"{safe}.conf"

    def patch_bench_config(self, bench: Path, asset_directives: Sequence[str]) -> NginxPatchResult:
        """Point ``location /assets`` at the bench and drop the ``main`` log format."""
        path = self.bench_config_path(bench)
        alias = bench / "sites" / "assets"
        try:
            config = NginxConfig.load(path)
        except OSError as exc:
            raise NginxConfigError(f"Cannot read {path}: {exc}") from exc
        replaced = config.set_asset_location(alias, asset_directives)
        fixed = config.drop_access_log_format("main")
        if not self.runner.dry_run:
            config.save(path)
        return NginxPatchResult(path=path, replaced=replaced, access_logs_fixed=fixed, alias=alias)

    def link(self, bench: Path, bench_name: str) -> CommandResult:
        """Symlink the bench config into the nginx ``conf.d`` directory."""
        return self.runner.run(
            ["ln", "-sf", str(self.bench_config_path(bench)), str(self.conf_link_path(bench_name))],
            sudo=True,
        )

    def test_config(self) -> CommandResult:
        """Run ``nginx -t`` to validate the configuration."""
        return self.runner.run([self.nginx_bin, "-t"], sudo=True)

    def reload(self) -> CommandResult:
        """Reload nginx to apply configuration changes."""
        return self.systemd.reload("nginx")


__all__ = ["NginxPatchResult", "NginxProvider"]
