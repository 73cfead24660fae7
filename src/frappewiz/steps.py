"""Concrete provisioning steps.

Each step is registered under a stable key with :func:`step` and receives
the shared :class:`~frappewiz.pipeline.WizardContext`. Steps check system
state first, ask only for what they still need and hand every external
action to a provider.
"""
from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

from .models import BenchInstance, InstallTarget, ProductionConfig, SiteInstance, TLSState
from .pipeline import (
    Step,
    StepErrorKind,
    StepHandler,
    StepResult,
    StepStatus,
    StepValidationError,
    WizardContext,
)
from .providers import activated_environment, app_name_from_url
from .providers.bench import app_exists, site_exists
from .tls import DomainResolutionError, resolve_domain, validate_domain

REGISTRY: dict[str, Step] = {}


def step(key: str, title: str) -> Callable[[StepHandler], StepHandler]:
    """Register the decorated handler as the step *key*."""

    def decorator(handler: StepHandler) -> StepHandler:
        if key in REGISTRY:
            raise ValueError(f"Duplicate step key '{key}'.")
        REGISTRY[key] = Step(key=key, title=title, handler=handler)
        return handler

    return decorator


def _heading(ctx: WizardContext, text: str) -> None:
    ctx.console.print(f"[bold green]{text}[/bold green]")


def _warn(ctx: WizardContext, text: str) -> None:
    ctx.console.print(f"[yellow]{text}[/yellow]")


@step("prepare-env", "Create the wizard home directory")
def prepare_env(ctx: WizardContext) -> StepResult:
    home = ctx.home
    if home.is_dir():
        return StepResult.completed("prepare-env", f"Home directory {home} ready.", home=home)
    if not ctx.runner.dry_run:
        home.mkdir(parents=True, exist_ok=True)
    return StepResult.completed("prepare-env", f"Created home directory {home}.", home=home)


@step("install-deps", "Install system packages")
def install_deps(ctx: WizardContext) -> StepResult:
    _heading(ctx, "Checking and installing dependencies...")

    def report(target: InstallTarget) -> None:
        if target.installed:
            ctx.console.print(f"{target.package} already installed")
        else:
            ctx.console.print(f"Installing {target.package}...")

    outcome = ctx.apt.ensure(ctx.config.system_packages, on_status=report)
    return StepResult.completed(
        "install-deps",
        f"System packages ready ({len(outcome.installed)} installed, "
        f"{len(outcome.already_installed)} already present).",
        installed=outcome.installed,
        already_installed=outcome.already_installed,
    )


@step("install-node", "Install Node.js")
def install_node(ctx: WizardContext) -> StepResult:
    info = ctx.node.detect_version()
    if info is not None and not ctx.node.needs_upgrade(info):
        return StepResult.completed(
            "install-node",
            f"Node.js {info.raw} already installed.",
            version=info.version,
        )
    if info is None:
        _heading(ctx, "Installing Node.js...")
    else:
        _heading(ctx, f"Node.js {info.raw} is older than {ctx.node.minimum_major}, upgrading...")
    ctx.node.install()
    return StepResult.completed(
        "install-node",
        f"Node.js installed from {ctx.node.setup_url}.",
        previous=info.version if info else None,
    )


@step("install-yarn", "Install Yarn through corepack")
def install_yarn(ctx: WizardContext) -> StepResult:
    current = ctx.yarn.version()
    if current is not None:
        return StepResult.completed("install-yarn", f"Yarn {current} already installed.")
    _heading(ctx, "Installing Yarn via Corepack...")
    ctx.yarn.ensure()
    return StepResult.completed("install-yarn", "Yarn activated through corepack.")


@step("setup-venv", "Set up the Python virtual environment")
def setup_venv(ctx: WizardContext) -> StepResult:
    _heading(ctx, "Setting up Python Virtual Environment...")
    if ctx.venv.exists():
        ctx.console.print("Virtual environment already exists. Skipping creation.")
    outcome = ctx.venv.ensure(ctx.config.bench_packages, upgrade=ctx.profile.upgrade_venv)
    base_env = ctx.runner.env if ctx.runner.env is not None else os.environ
    ctx.runner.env = activated_environment(base_env, ctx.venv.venv_dir)
    return StepResult.completed(
        "setup-venv",
        f"Virtual environment ready at {ctx.venv.venv_dir}.",
        created=outcome.created,
        installed=outcome.installed,
    )


@step("setup-mysql", "Start and secure MariaDB")
def setup_mysql(ctx: WizardContext) -> StepResult:
    _heading(ctx, "Setting up MySQL/MariaDB...")
    ctx.mariadb.ensure_service()
    if ctx.mariadb.root_socket_login_works():
        return StepResult.completed("setup-mysql", "MySQL already configured.")
    _heading(ctx, "Running MySQL secure installation...")
    ctx.mariadb.secure_installation()
    return StepResult.completed("setup-mysql", "MySQL secured.")


@step("setup-ssh", "Generate an SSH key for private repositories")
def setup_ssh(ctx: WizardContext) -> StepResult:
    _heading(ctx, "Setting up SSH for private repositories...")
    overwrite = False
    if ctx.ssh.exists():
        overwrite = ctx.profile.offer_overwrite and ctx.confirm(
            "ssh.overwrite",
            "SSH key already exists. Do you want to overwrite?",
        )
        if not overwrite:
            return StepResult.skipped("setup-ssh", "Skipping SSH key generation.")
    ctx.ssh.generate(overwrite=overwrite)
    public_key = ctx.ssh.public_key()
    if public_key:
        _heading(ctx, "Your public SSH key:")
        ctx.console.print(public_key, markup=False, highlight=False)
    _warn(ctx, "Please add this key to your Git provider (GitHub/GitLab/Bitbucket).")
    return StepResult.completed("setup-ssh", f"SSH key written to {ctx.ssh.key_path}.")


@step("setup-git", "Configure the git identity")
def setup_git(ctx: WizardContext) -> StepResult:
    _heading(ctx, "Setting up Git configuration...")
    if ctx.git.get_global("user.name") is not None:
        overwrite = ctx.profile.offer_overwrite and ctx.confirm(
            "git.overwrite",
            "Git global config exists. Do you want to overwrite?",
        )
        if not overwrite:
            return StepResult.skipped("setup-git", "Skipping Git config.")

    name = ctx.require(ctx.ask("git.name", "Enter your Git username"), "Git username")
    email = ctx.require(ctx.ask("git.email", "Enter your Git email"), "Git email")
    ctx.git.set_global("user.name", name)
    ctx.git.set_global("user.email", email)

    bench = ctx.current_bench
    if ctx.profile.offer_bench_git and bench is not None and ctx.git.is_repository(bench.path):
        if ctx.confirm("git.bench_config", "Do you want to set bench-specific Git config?"):
            local_name = ctx.ask(
                "git.bench_name",
                "Enter bench-specific Git username (press Enter to skip)",
                default="",
            )
            local_email = ctx.ask(
                "git.bench_email",
                "Enter bench-specific Git email (press Enter to skip)",
                default="",
            )
            if local_name:
                ctx.git.set_local(bench.path, "user.name", local_name)
            if local_email:
                ctx.git.set_local(bench.path, "user.email", local_email)
    return StepResult.completed("setup-git", "Git configuration completed.")


@step("init-bench", "Initialise a bench")
def init_bench(ctx: WizardContext) -> StepResult:
    name = ctx.ask(
        "bench.name",
        "Enter bench directory name",
        default=ctx.profile.bench_default,
    )
    bench = _create_bench(ctx, name)
    if bench is None:
        return StepResult.skipped("init-bench", "Bench initialisation skipped.")

    if ctx.profile.offer_apps_after_init and ctx.confirm(
        "bench.get_apps",
        "Do you want to install additional apps now?",
    ):
        installed = _install_apps(ctx, bench)
        return StepResult.completed(
            "init-bench",
            f"Bench '{bench.name}' created with {len(installed)} additional app(s).",
            bench=bench.name,
            apps=installed,
        )
    return StepResult.completed(
        "init-bench",
        f"Bench '{bench.name}' created successfully!",
        bench=bench.name,
    )


def _create_bench(ctx: WizardContext, name: str) -> BenchInstance | None:
    name = ctx.require(name, "Bench name")
    if "/" in name or name in {".", ".."}:
        raise StepValidationError(f"Invalid bench name '{name}'")
    branch = ctx.ask(
        "bench.frappe_branch",
        "Enter Frappe version",
        default=ctx.config.frappe_version,
    )
    branch = ctx.require(branch, "Frappe version")
    path = ctx.bench_path(name)
    if path.exists():
        _warn(ctx, f"Bench '{name}' already exists!")
        if not ctx.confirm("bench.continue_existing", "Continue anyway?"):
            return None
    _heading(ctx, f"Initializing Bench: {name} with {branch}")
    ctx.bench.init(ctx.home, name, branch)
    return ctx.remember_bench(name, frappe_version=branch)


@step("new-site", "Create a site")
def new_site(ctx: WizardContext) -> StepResult:
    _heading(ctx, "Creating Frappe Site...")
    bench_name = ctx.require(
        ctx.ask("site.bench", "Enter bench directory name", default=ctx.profile.bench_default),
        "Bench name",
    )
    if not ctx.bench_path(bench_name).is_dir() and bench_name not in ctx.benches:
        if not ctx.profile.offer_bench_create:
            raise StepValidationError(f"Bench '{bench_name}' not found!")
        _warn(ctx, f"Bench directory '{bench_name}' not found!")
        if not ctx.confirm("site.create_bench", "Do you want to create it now?"):
            return StepResult.aborted("new-site", f"Bench '{bench_name}' not found!")
        if _create_bench(ctx, bench_name) is None:
            return StepResult.skipped("new-site", "Bench creation skipped.")
    bench = ctx.require_bench(bench_name)

    site_name = ctx.require(
        ctx.ask("site.name", "Enter site name (e.g., site1.local or yourdomain.com)"),
        "Site name",
    )
    force = False
    if site_exists(bench.path, site_name):
        _warn(ctx, f"Site '{site_name}' already exists in bench '{bench.name}'.")
        if not ctx.confirm("site.recreate", "Recreate it (existing data is dropped)?"):
            return StepResult.skipped("new-site", f"Site '{site_name}' left unchanged.")
        force = True

    site = SiteInstance(bench=bench, name=site_name)
    if ctx.profile.collect_db_credentials:
        site = SiteInstance(
            bench=bench,
            name=site_name,
            db_root_username=ctx.ask(
                "site.db_root_username",
                "MySQL root username",
                default="root",
            ),
            db_root_password=ctx.ask(
                "site.db_root_password",
                "MySQL root password",
                default="",
                secret=True,
            ),
            admin_password=ctx.ask(
                "site.admin_password",
                "Site administrator password",
                default="",
                secret=True,
            ),
        )
    _heading(ctx, f"Creating site: {site.name}")
    ctx.bench.new_site(
        bench.path,
        site.name,
        db_root_username=site.db_root_username if ctx.profile.collect_db_credentials else None,
        db_root_password=site.db_root_password or None,
        admin_password=site.admin_password or None,
        force=force,
    )
    ctx.sites.append(site)

    if ctx.profile.install_desk_theme and ctx.config.desk_theme_repo:
        _install_desk_theme(ctx, bench, site.name)

    if ctx.profile.offer_custom_app and ctx.confirm("site.custom_app", "Create custom app?"):
        _create_custom_app(ctx, bench, site.name, required=False)

    status = StepStatus.COMPLETED
    if ctx.profile.offer_environment:
        status = _choose_environment(ctx, bench, site.name)

    message = f"Site '{site.name}' created successfully!"
    result = StepResult.completed("new-site", message, bench=bench.name, site=site.name)
    if status is StepStatus.WARNING:
        result = StepResult.warning("new-site", message, bench=bench.name, site=site.name)
    return result


def _install_desk_theme(ctx: WizardContext, bench: BenchInstance, site: str) -> None:
    _heading(ctx, "Installing Frappe Desk Theme...")
    app = app_name_from_url(ctx.config.desk_theme_repo)
    if not app_exists(bench.path, app):
        ctx.bench.get_app(bench.path, ctx.config.desk_theme_repo)
    ctx.bench.install_app(bench.path, site, app)


def _choose_environment(ctx: WizardContext, bench: BenchInstance, site: str) -> StepStatus:
    _heading(ctx, "Environment Setup:")
    ctx.console.print("1) Development")
    ctx.console.print("2) Production")
    choice = ctx.ask("site.environment", "Choose environment [1-2]", default="")
    if choice == "1":
        _setup_development(ctx, bench, site)
        return StepStatus.COMPLETED
    if choice == "2":
        return _production_flow(ctx, bench, site).status
    _warn(ctx, "No environment setup selected")
    return StepStatus.COMPLETED


@step("get-apps", "Fetch and install apps")
def get_apps(ctx: WizardContext) -> StepResult:
    bench = ctx.require_bench(
        ctx.ask(
            "apps.bench",
            "Enter the bench directory to install apps into",
            default=ctx.profile.bench_default,
        )
    )
    installed = _install_apps(ctx, bench)
    return StepResult.completed(
        "get-apps",
        f"{len(installed)} app(s) installed in bench '{bench.name}'.",
        apps=installed,
    )


def _install_apps(ctx: WizardContext, bench: BenchInstance) -> list[str]:
    """Loop fetching apps until the operator answers ``done``."""
    installed: list[str] = []
    while True:
        url = ctx.ask(
            "apps.url",
            "Enter Git/Bitbucket repo URL of an app to install (or type 'done' to skip)",
            default="done",
        )
        if not url or url.lower() == "done":
            break
        branch = ctx.ask(
            "apps.branch",
            "Enter branch to use",
            default=bench.frappe_version or ctx.config.frappe_version,
        )
        app = app_name_from_url(url)
        if not ctx.confirm("apps.confirm_get", f"Fetch app '{app}' from branch '{branch}'?"):
            continue
        ctx.bench.get_app(bench.path, url, branch=branch or None)

        site = ctx.ask("apps.site", f"Install '{app}' on which site?", default="")
        if not site:
            _warn(ctx, f"No site given; '{app}' fetched but not installed.")
            continue
        if not ctx.confirm("apps.confirm_install", f"Proceed to install '{app}' on '{site}'?"):
            continue
        ctx.bench.install_app(bench.path, site, app)
        ctx.console.print(f"[green]{app} installed successfully on {site}[/green]")
        installed.append(app)
    return installed


@step("new-app", "Create a custom app")
def new_app(ctx: WizardContext) -> StepResult:
    bench = ctx.require_bench(
        ctx.ask("app.bench", "Enter bench name", default=ctx.profile.bench_default)
    )
    site = ctx.require(ctx.ask("app.site", "Install the new app on which site?"), "Site name")
    app = _create_custom_app(ctx, bench, site, required=True)
    return StepResult.completed("new-app", f"App '{app}' created and installed on '{site}'.")


def _create_custom_app(
    ctx: WizardContext,
    bench: BenchInstance,
    site: str,
    *,
    required: bool,
) -> str | None:
    app = ctx.ask("app.name", "Enter app name", default=None if required else "")
    if not app:
        if required:
            raise StepValidationError("App name cannot be empty")
        return None
    ctx.bench.new_app(bench.path, app)
    ctx.bench.install_app(bench.path, site, app)
    remote = ctx.ask("app.repo_url", "Enter Git repo URL for initial commit (optional)", default="")
    if remote:
        ctx.git.publish(bench.path / "apps" / app, remote)
    return app


@step("setup-development", "Show development commands")
def setup_development(ctx: WizardContext) -> StepResult:
    bench = ctx.require_bench(
        ctx.ask("dev.bench", "Enter bench name", default=ctx.profile.bench_default)
    )
    site = ctx.require(ctx.ask("dev.site", "Enter site name"), "Site name")
    _setup_development(ctx, bench, site)
    return StepResult.completed("setup-development", "Development environment ready.")


def _setup_development(ctx: WizardContext, bench: BenchInstance, site: str) -> None:
    _heading(ctx, "Setting up Development Environment...")
    ctx.console.print("Development server commands:")
    ctx.console.print("  bench start                    # Start all services")
    ctx.console.print(f"  bench --site {site} serve  # Serve specific site")
    if ctx.confirm("dev.start", "Start development server now?"):
        ctx.bench.start(bench.path)


@step("setup-production", "Wire supervisor, nginx and TLS")
def setup_production(ctx: WizardContext) -> StepResult:
    if not ctx.profile.production_choice:
        bench = ctx.require_bench(
            ctx.ask(
                "production.bench",
                "Enter the bench directory to configure for production",
                default=ctx.profile.bench_default,
            )
        )
        site = ctx.require(ctx.ask("production.site", "Enter site name"), "Site name")
        return _production_flow(ctx, bench, site)

    _heading(ctx, "Production Setup Options:")
    ctx.console.print("1) Setup All (Supervisor + Nginx + SSL)")
    ctx.console.print("2) Setup SSL Only")
    choice = ctx.ask("production.choice", "Choose an option [1-2]", default="")
    bench = ctx.require_bench(
        ctx.ask(
            "production.bench",
            "Enter the bench directory to configure for production",
            default=ctx.profile.bench_default,
        )
    )
    production = ProductionConfig(bench=bench)
    ctx.production = production
    if choice == "1":
        wired = _wire_production(ctx, production)
        if wired is not None:
            return wired
        ctx.console.print(
            "Note: Ensure your domain is mapped correctly to this server's public IP address."
        )
    elif choice == "2":
        ctx.console.print("Skipping Supervisor and Nginx setup...")
    else:
        return StepResult.aborted("setup-production", "Invalid option selected")

    if ctx.confirm("ssl.enable", "Do you want to configure SSL with certbot for a site?"):
        ssl = _setup_ssl(ctx, production)
        if ssl.status is not StepStatus.COMPLETED:
            return StepResult(
                "setup-production",
                ssl.status,
                ssl.message,
                error_kind=ssl.error_kind,
                context=production.to_dict(),
            )
    return StepResult.completed(
        "setup-production",
        f"Production setup finished for '{bench.name}'.",
        **production.to_dict(),
    )


def _production_flow(ctx: WizardContext, bench: BenchInstance, site: str) -> StepResult:
    """Full production setup used by the enhanced flow."""
    _heading(ctx, "Setting up Production Environment...")
    production = ProductionConfig(bench=bench, site=site)
    ctx.production = production
    wired = _wire_production(ctx, production)
    if wired is not None:
        return wired

    ssl: StepResult | None = None
    if ctx.confirm("ssl.enable", "Setup SSL certificate?"):
        ssl = _setup_ssl(ctx, production)

    ctx.bench.fix_site_permissions(bench.path, ctx.user)

    _heading(ctx, "Production environment setup complete!")
    _heading(ctx, "Production URLs:")
    ctx.console.print(f"  HTTP:  http://{site}")
    if production.tls_state is TLSState.ISSUED and production.domain:
        ctx.console.print(f"  HTTPS: https://{production.domain}")
    _heading(ctx, "Management commands:")
    ctx.console.print("  sudo supervisorctl restart all    # Restart services")
    ctx.console.print("  sudo systemctl reload nginx       # Reload nginx")
    ctx.console.print("  bench migrate                     # Run migrations")

    if ssl is not None and ssl.status is StepStatus.WARNING:
        return StepResult.warning(
            "setup-production",
            ssl.message,
            kind=ssl.error_kind or StepErrorKind.ENVIRONMENT,
            **production.to_dict(),
        )
    return StepResult.completed(
        "setup-production",
        f"Production setup finished for '{bench.name}'.",
        **production.to_dict(),
    )


def _wire_production(ctx: WizardContext, production: ProductionConfig) -> StepResult | None:
    """Generate, patch and link supervisor and nginx configs.

    Returns a skipped result when the operator declines to overwrite an
    existing config, otherwise None.
    """
    bench = production.bench
    _heading(ctx, f"Setting up Supervisor and Nginx for {bench.name}...")

    if not _may_overwrite(ctx, ctx.supervisor.bench_config_path(bench.path), "supervisor"):
        return StepResult.skipped("setup-production", "Existing supervisor.conf kept.")
    ctx.bench.setup_supervisor(bench.path, ctx.user)
    ctx.supervisor.link(bench.path, bench.name)
    production.supervisor_linked = True

    if not _may_overwrite(ctx, ctx.nginx.bench_config_path(bench.path), "nginx"):
        return StepResult.skipped("setup-production", "Existing nginx.conf kept.")
    ctx.bench.setup_nginx(bench.path)
    if ctx.runner.dry_run and not ctx.nginx.bench_config_path(bench.path).exists():
        _warn(ctx, "Dry run: nginx.conf not generated, skipping asset patch.")
    else:
        patch = ctx.nginx.patch_bench_config(bench.path, ctx.profile.asset_directives)
        ctx.console.print(
            f"Patched {patch.path}: /assets -> {patch.alias} "
            f"({patch.replaced} existing block(s) replaced)."
        )

    if ctx.profile.rebuild_assets:
        _heading(ctx, "Configuring assets and permissions...")
        ctx.bench.fix_asset_permissions(bench.path, ctx.user)
        ctx.bench.build(bench.path)
        if production.site:
            ctx.bench.clear_cache(bench.path, production.site)
            ctx.bench.clear_website_cache(bench.path, production.site)

    ctx.nginx.link(bench.path, bench.name)
    production.nginx_linked = True
    ctx.nginx.test_config()
    ctx.supervisor.reread()
    ctx.supervisor.update()
    ctx.nginx.reload()
    ctx.console.print("[green]Nginx configured successfully[/green]")
    return None


def _may_overwrite(ctx: WizardContext, path: Path, label: str) -> bool:
    if not ctx.profile.offer_overwrite or not path.exists():
        return True
    return ctx.confirm(
        f"production.overwrite_{label}",
        f"{label}.conf already exists and this will overwrite it. Do you want to continue?",
    )


@step("setup-ssl", "Issue a TLS certificate with certbot")
def setup_ssl(ctx: WizardContext) -> StepResult:
    bench = ctx.require_bench(
        ctx.ask("ssl.bench", "Enter bench name", default=ctx.profile.bench_default)
    )
    site = ctx.ask("ssl.site", "Enter site name (press Enter to skip)", default="") or None
    production = ctx.production
    if production is None or production.bench != bench:
        production = ProductionConfig(bench=bench, site=site)
        ctx.production = production
    elif site:
        production.site = site
    return _setup_ssl(ctx, production)


def _setup_ssl(ctx: WizardContext, production: ProductionConfig) -> StepResult:
    raw = ctx.ask("ssl.domain", "Enter the domain name configured in nginx", default="")
    if not raw:
        production.tls_state = TLSState.SKIPPED
        return StepResult.skipped("setup-ssl", "No domain given; SSL skipped.")
    try:
        domain = validate_domain(raw)
    except ValueError as exc:
        raise StepValidationError(str(exc)) from exc
    production.domain = domain

    _heading(ctx, "Checking domain mapping...")
    try:
        addresses = resolve_domain(domain, resolver=ctx.resolver)
    except DomainResolutionError as exc:
        production.tls_state = TLSState.SKIPPED
        _warn(ctx, "Please ensure your domain's DNS records are properly configured.")
        return StepResult.warning("setup-ssl", str(exc), domain=domain)

    _heading(ctx, f"Setting up SSL certificate for {domain}...")
    ctx.certbot.issue(domain)
    production.tls_state = TLSState.ISSUED
    if ctx.profile.add_domain_after_ssl and production.site:
        ctx.bench.enable_dns_multitenant(production.bench.path)
        ctx.bench.add_domain(production.bench.path, production.site, domain)

    production.certificate = ctx.certbot.inspect(domain)
    if production.certificate is not None:
        ctx.console.print(
            f"Certificate valid until {production.certificate.not_valid_after:%Y-%m-%d} "
            f"({production.certificate.days_remaining()} days)."
        )
    return StepResult.completed(
        "setup-ssl",
        "SSL certificate configured!",
        domain=domain,
        addresses=list(addresses),
    )


__all__ = ["REGISTRY", "step"]
