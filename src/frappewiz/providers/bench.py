"""Provider wrapping the ``bench`` CLI.

Every call receives the directory it operates in; the provider never relies
on the process working directory.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandResult, CommandRunner


def app_name_from_url(url: str) -> str:
    """Return the app name ``bench get-app`` derives from a repository URL."""
    tail = url.rstrip("/").rsplit("/", 1)[-1]
    tail = tail.rsplit(":", 1)[-1]
    return tail[: -len(".git")] if tail.endswith(".git") else tail


@dataclass(slots=True)
class BenchProvider:
    """Invoke bench lifecycle commands for a bench directory."""

    runner: CommandRunner
    bench_bin: str = "bench"

    def init(self, home: Path, name: str, frappe_branch: str) -> CommandResult:
        """Create a new bench called *name* inside *home*."""
        return self._bench(home, "init", "--frappe-branch", frappe_branch, name, attach=True)

    def new_site(
        self,
        bench: Path,
        site: str,
        *,
        db_root_username: str | None = None,
        db_root_password: str | None = None,
        admin_password: str | None = None,
        force: bool = False,
    ) -> CommandResult:
        """Create *site*; credentials not supplied are prompted for by bench."""
        args = ["new-site", site]
        if force:
            args.append("--force")
        if db_root_username:
            args += ["--db-root-username", db_root_username]
        if db_root_password:
            args += ["--db-root-password", db_root_password]
        if admin_password:
            args += ["--admin-password", admin_password]
        return self._bench(bench, *args, attach=True)

    def get_app(self, bench: Path, url: str, *, branch: str | None = None) -> CommandResult:
        """Fetch an app repository into the bench."""
        args = ["get-app"]
        if branch:
            args += ["--branch", branch]
        return self._bench(bench, *args, url, attach=True)

    def install_app(self, bench: Path, site: str, app: str) -> CommandResult:
        """Install *app* on *site*."""
        return self._bench(bench, "--site", site, "install-app", app, attach=True)

    def new_app(self, bench: Path, app: str) -> CommandResult:
        """Scaffold a new app (bench asks its own questions)."""
        return self._bench(bench, "new-app", app, attach=True)

    def setup_supervisor(self, bench: Path, user: str) -> CommandResult:
        """Generate ``config/supervisor.conf`` for *user*."""
        return self._bench(bench, "setup", "supervisor", "--user", user, "--yes")

    def setup_nginx(self, bench: Path) -> CommandResult:
        """Generate ``config/nginx.conf``."""
        return self._bench(bench, "setup", "nginx", "--yes")

    def build(self, bench: Path, app: str = "frappe") -> CommandResult:
        """Build front-end assets for *app*."""
        return self._bench(bench, "build", "--app", app, attach=True)

    def clear_cache(self, bench: Path, site: str) -> CommandResult:
        """Clear the document cache of *site*."""
        return self._bench(bench, "--site", site, "clear-cache")

    def clear_website_cache(self, bench: Path, site: str) -> CommandResult:
        """Clear the website cache of *site*."""
        return self._bench(bench, "--site", site, "clear-website-cache")

    def enable_dns_multitenant(self, bench: Path) -> CommandResult:
        """Turn on DNS based multitenancy."""
        return self._bench(bench, "config", "dns_multitenant", "on")

    def add_domain(self, bench: Path, site: str, domain: str) -> CommandResult:
        """Attach *domain* to *site*."""
        return self._bench(bench, "setup", "add-domain", "--site", site, domain)

    def start(self, bench: Path) -> CommandResult:
        """Run the development process manager in the foreground."""
        return self._bench(bench, "start", attach=True)

    def fix_asset_permissions(self, bench: Path, user: str) -> None:
        """Give *user* ownership of built assets and make them world readable."""
        assets = bench / "sites" / "assets"
        if not self.runner.dry_run:
            assets.mkdir(parents=True, exist_ok=True)
        self.runner.run(["chown", "-R", f"{user}:{user}", str(assets)], sudo=True)
        self.runner.run(["chmod", "-R", "755", str(assets)], sudo=True)
        self.runner.run(
            ["find", str(assets), "-type", "f", "-exec", "chmod", "644", "{}", "+"],
            sudo=True,
        )

    def fix_site_permissions(self, bench: Path, user: str, group: str = "www-data") -> None:
        """Let the web server group read everything under ``sites``."""
        sites = bench / "sites"
        self.runner.run(["chown", "-R", f"{user}:{group}", str(sites)], sudo=True)
        self.runner.run(["chmod", "-R", "755", str(sites)], sudo=True)

    # ------------------------------------------------------------------
    def _bench(self, cwd: Path, *args: str, attach: bool = False) -> CommandResult:
        return self.runner.run([self.bench_bin, *args], cwd=cwd, capture_output=not attach)


def site_exists(bench: Path, site: str) -> bool:
    """Return True when *site* has a directory under ``bench/sites``."""
    return (bench / "sites" / site / "site_config.json").exists()


def app_exists(bench: Path, app: str) -> bool:
    """Return True when *app* has been fetched into ``bench/apps``."""
    return (bench / "apps" / app).is_dir()


__all__ = ["BenchProvider", "app_exists", "app_name_from_url", "site_exists"]
