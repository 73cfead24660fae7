"""Configuration loader for frappewiz.

Configuration values are merged from several sources, later sources winning:

1. Built-in defaults.
2. ``~/.config/frappewiz/config.yml`` (or an override path).
3. Environment variables prefixed with ``FRAPPEWIZ_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export FRAPPEWIZ_HOME=/opt/frappe
    export FRAPPEWIZ_NODE__MINIMUM_MAJOR=20
    export FRAPPEWIZ_PROFILES__CLASSIC__BENCH_DEFAULT=erp-bench

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
flow-style lists are parsed naturally. The resulting configuration is exposed
as immutable ``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import yaml


ENV_PREFIX = "FRAPPEWIZ_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {
    CONFIG_ENV_VAR,
    f"{ENV_PREFIX}ANSWERS",
}

CLASSIC_ASSET_DIRECTIVES: tuple[str, ...] = (
    "try_files $uri $uri/ =404",
    "allow all",
    "add_header X-Debug-Path $request_filename",
    'add_header Cache-Control "max-age=31536000"',
)

ENHANCED_ASSET_DIRECTIVES: tuple[str, ...] = (
    "try_files $uri $uri/ =404",
    "expires 1y",
    'add_header Cache-Control "public, immutable"',
    "access_log off",
)


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class NodeConfig:
    """Node.js toolchain requirements."""

    minimum_major: int = 18
    setup_url: str = "https://deb.nodesource.com/setup_18.x"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"minimum_major": self.minimum_major, "setup_url": self.setup_url}


@dataclass(frozen=True)
class ProductionPaths:
    """System-wide directories that bench configs are linked into."""

    nginx_conf_dir: Path = Path("/etc/nginx/conf.d")
    supervisor_conf_dir: Path = Path("/etc/supervisor/conf.d")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "nginx_conf_dir": str(self.nginx_conf_dir),
            "supervisor_conf_dir": str(self.supervisor_conf_dir),
        }


@dataclass(frozen=True)
class ProfileConfig:
    """Defaults and behaviour switches for one menu profile."""

    name: str
    menu: str
    title: str
    bench_default: str | None = None
    secondary_bench: str | None = None
    startup_steps: tuple[str, ...] = ("prepare-env",)
    asset_directives: tuple[str, ...] = CLASSIC_ASSET_DIRECTIVES
    offer_overwrite: bool = True
    offer_bench_create: bool = False
    offer_bench_git: bool = False
    offer_apps_after_init: bool = False
    collect_db_credentials: bool = False
    install_desk_theme: bool = False
    offer_custom_app: bool = False
    offer_environment: bool = False
    production_choice: bool = True
    rebuild_assets: bool = False
    add_domain_after_ssl: bool = False
    upgrade_venv: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "menu": self.menu,
            "title": self.title,
            "bench_default": self.bench_default,
            "secondary_bench": self.secondary_bench,
            "startup_steps": list(self.startup_steps),
            "asset_directives": list(self.asset_directives),
            "offer_overwrite": self.offer_overwrite,
            "offer_bench_create": self.offer_bench_create,
            "offer_bench_git": self.offer_bench_git,
            "offer_apps_after_init": self.offer_apps_after_init,
            "collect_db_credentials": self.collect_db_credentials,
            "install_desk_theme": self.install_desk_theme,
            "offer_custom_app": self.offer_custom_app,
            "offer_environment": self.offer_environment,
            "production_choice": self.production_choice,
            "rebuild_assets": self.rebuild_assets,
            "add_domain_after_ssl": self.add_domain_after_ssl,
            "upgrade_venv": self.upgrade_venv,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for frappewiz."""

    config_file: Path
    home: Path
    venv_dir: Path
    logs_dir: Path
    frappe_version: str
    system_packages: tuple[str, ...]
    bench_packages: tuple[str, ...]
    desk_theme_repo: str
    ssh_key: Path
    sudo_bin: str
    bench_bin: str
    default_profile: str
    node: NodeConfig
    paths: ProductionPaths
    profiles: Mapping[str, ProfileConfig]

    def profile(self, name: str | None = None) -> ProfileConfig:
        """Return the profile called *name* (or the default profile)."""
        key = name or self.default_profile
        try:
            return self.profiles[key]
        except KeyError:
            allowed = ", ".join(sorted(self.profiles))
            raise ConfigError(f"Unknown profile '{key}'. Available: {allowed}.") from None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "home": str(self.home),
            "venv_dir": str(self.venv_dir),
            "logs_dir": str(self.logs_dir),
            "frappe_version": self.frappe_version,
            "system_packages": list(self.system_packages),
            "bench_packages": list(self.bench_packages),
            "desk_theme_repo": self.desk_theme_repo,
            "ssh_key": str(self.ssh_key),
            "sudo_bin": self.sudo_bin,
            "bench_bin": self.bench_bin,
            "default_profile": self.default_profile,
            "node": self.node.to_dict(),
            "paths": self.paths.to_dict(),
            "profiles": {name: profile.to_dict() for name, profile in self.profiles.items()},
        }


DEFAULT_SYSTEM_PACKAGES: tuple[str, ...] = (
    "curl",
    "git",
    "python3-dev",
    "python3-pip",
    "python3-setuptools",
    "python3-venv",
    "libffi-dev",
    "build-essential",
    "redis-server",
    "supervisor",
    "libmysqlclient-dev",
    "mariadb-server",
    "mariadb-client",
    "python3-mysqldb",
    "pkg-config",
    "default-libmysqlclient-dev",
    "gcc",
    "nginx",
    "certbot",
    "python3-certbot-nginx",
    "wkhtmltopdf",
)

DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/frappewiz/config.yml",
    "home": "~/frappe_portable",
    "venv_dir": None,  # derived from home when absent
    "logs_dir": None,  # derived from home when absent
    "frappe_version": "version-15",
    "system_packages": list(DEFAULT_SYSTEM_PACKAGES),
    "bench_packages": ["pip", "wheel", "frappe-bench"],
    "desk_theme_repo": "https://github.com/dhwani-ris/frappe_desk_theme",
    "ssh_key": "~/.ssh/id_rsa",
    "sudo_bin": "sudo",
    "bench_bin": "bench",
    "default_profile": "classic",
    "node": {
        "minimum_major": 18,
    },
    "paths": {
        "nginx_conf_dir": "/etc/nginx/conf.d",
        "supervisor_conf_dir": "/etc/supervisor/conf.d",
    },
    "profiles": {
        "classic": {
            "menu": "classic",
            "title": "Welcome to Frappe Setup Wizard",
            "bench_default": "frappe-bench",
            "secondary_bench": "mgrant-bench",
            "startup_steps": [
                "prepare-env",
                "install-deps",
                "install-node",
                "install-yarn",
                "setup-venv",
            ],
            "asset_directives": list(CLASSIC_ASSET_DIRECTIVES),
            "offer_overwrite": True,
            "offer_bench_create": True,
            "offer_bench_git": True,
            "offer_apps_after_init": True,
            "production_choice": True,
        },
        "enhanced": {
            "menu": "enhanced",
            "title": "Frappe Setup Wizard",
            "startup_steps": ["prepare-env"],
            "asset_directives": list(ENHANCED_ASSET_DIRECTIVES),
            "offer_overwrite": False,
            "collect_db_credentials": True,
            "install_desk_theme": True,
            "offer_custom_app": True,
            "offer_environment": True,
            "production_choice": False,
            "rebuild_assets": True,
            "add_domain_after_ssl": True,
            "upgrade_venv": True,
        },
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_MENUS = {"classic", "enhanced"}
PROFILE_KEYS = {
    "menu",
    "title",
    "bench_default",
    "secondary_bench",
    "startup_steps",
    "asset_directives",
    "offer_overwrite",
    "offer_bench_create",
    "offer_bench_git",
    "offer_apps_after_init",
    "collect_db_credentials",
    "install_desk_theme",
    "offer_custom_app",
    "offer_environment",
    "production_choice",
    "rebuild_assets",
    "add_domain_after_ssl",
    "upgrade_venv",
}
_PROFILE_FLAGS = PROFILE_KEYS - {
    "menu",
    "title",
    "bench_default",
    "secondary_bench",
    "startup_steps",
    "asset_directives",
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    environ = dict(os.environ) if env is None else dict(env)
    if config_file:
        location = Path(config_file)
    elif CONFIG_ENV_VAR in environ:
        location = Path(environ[CONFIG_ENV_VAR])
    else:
        location = Path(str(DEFAULTS["config_file"]))
    location = location.expanduser()

    merged: dict[str, object] = dict(DEFAULTS)
    for layer in (_read_config_file(location), _environment_layer(environ), overrides):
        if layer:
            merged = _overlay(merged, layer)
    merged["config_file"] = str(location)

    _check_keys(merged)
    return _assemble(merged)


def _read_config_file(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {path}: {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _section(document, str(path))


def _environment_layer(environ: Mapping[str, str]) -> dict[str, object]:
    """Turn ``FRAPPEWIZ_A__B=value`` variables into ``{"a": {"b": value}}``."""
    layer: dict[str, object] = {}
    for name, raw in environ.items():
        if name in RESERVED_ENV_KEYS or not name.startswith(ENV_PREFIX):
            continue
        keys = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if not keys:
            continue
        node = layer
        for key in keys[:-1]:
            child = node.setdefault(key, {})
            if not isinstance(child, dict):
                raise ConfigError(f"{name} nests below the scalar setting '{key}'.")
            node = child
        node[keys[-1]] = _parse_scalar(raw)
    return layer


def _parse_scalar(raw: str) -> object:
    text = raw.strip()
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def _overlay(base: Mapping[str, object], layer: Mapping[str, object]) -> dict[str, object]:
    """Return *base* updated with *layer*; nested mappings merge key by key."""
    result = dict(base)
    for key, value in layer.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = _overlay(current, value)
        else:
            result[key] = value
    return result


def _reject_unknown(section: Mapping[str, object], allowed: Iterable[str], what: str) -> None:
    extra = sorted(set(section) - set(allowed))
    if extra:
        raise ConfigError(f"{what}: {', '.join(extra)}.")


def _check_keys(raw: Mapping[str, object]) -> None:
    _reject_unknown(raw, ALLOWED_TOP_LEVEL_KEYS, "Unknown configuration keys")
    _reject_unknown(
        _section(raw.get("node"), "node"),
        ("minimum_major", "setup_url"),
        "Unknown node configuration keys",
    )
    _reject_unknown(
        _section(raw.get("paths"), "paths"),
        ("nginx_conf_dir", "supervisor_conf_dir"),
        "Unknown paths configuration keys",
    )

    profiles = _section(raw.get("profiles"), "profiles")
    if not profiles:
        raise ConfigError("No profiles are configured.")
    for name, body in profiles.items():
        section = _section(body, f"profiles.{name}")
        _reject_unknown(section, PROFILE_KEYS, f"Unknown keys for profiles.{name}")
        menu = str(section.get("menu", name))
        if menu not in ALLOWED_MENUS:
            raise ConfigError(
                f"Unsupported menu '{menu}' for profiles.{name}; "
                f"choose one of {', '.join(sorted(ALLOWED_MENUS))}."
            )

    chosen = raw.get("default_profile")
    if chosen is not None and str(chosen) not in profiles:
        raise ConfigError(f"default_profile '{chosen}' does not name a profile.")


def _assemble(raw: Mapping[str, object]) -> AppConfig:
    home = _path(raw.get("home"), "home")

    node_section = _section(raw.get("node"), "node")
    major = _integer(node_section.get("minimum_major", 18), "node.minimum_major")
    if major <= 0:
        raise ConfigError("node.minimum_major must be greater than zero.")
    setup_url = node_section.get("setup_url") or f"https://deb.nodesource.com/setup_{major}.x"

    paths_section = _section(raw.get("paths"), "paths")

    return AppConfig(
        config_file=_path(raw.get("config_file"), "config_file"),
        home=home,
        venv_dir=_path(raw["venv_dir"], "venv_dir") if raw.get("venv_dir") else home / "venv",
        logs_dir=_path(raw["logs_dir"], "logs_dir") if raw.get("logs_dir") else home / "logs",
        frappe_version=_required_text(raw.get("frappe_version"), "frappe_version"),
        system_packages=_words(raw.get("system_packages"), "system_packages"),
        bench_packages=_words(raw.get("bench_packages"), "bench_packages"),
        desk_theme_repo=str(raw.get("desk_theme_repo") or ""),
        ssh_key=_path(raw.get("ssh_key"), "ssh_key"),
        sudo_bin=_required_text(raw.get("sudo_bin"), "sudo_bin"),
        bench_bin=_required_text(raw.get("bench_bin"), "bench_bin"),
        default_profile=str(raw.get("default_profile") or "classic"),
        node=NodeConfig(minimum_major=major, setup_url=str(setup_url)),
        paths=ProductionPaths(
            nginx_conf_dir=_path(
                paths_section.get("nginx_conf_dir", "/etc/nginx/conf.d"), "paths.nginx_conf_dir"
            ),
            supervisor_conf_dir=_path(
                paths_section.get("supervisor_conf_dir", "/etc/supervisor/conf.d"),
                "paths.supervisor_conf_dir",
            ),
        ),
        profiles={
            name: _profile(name, _section(body, f"profiles.{name}"))
            for name, body in _section(raw.get("profiles"), "profiles").items()
        },
    )


def _profile(name: str, section: Mapping[str, object]) -> ProfileConfig:
    prefix = f"profiles.{name}"
    switches = {
        flag: _flag(section[flag], f"{prefix}.{flag}") for flag in _PROFILE_FLAGS if flag in section
    }
    steps = section.get("startup_steps")
    directives = section.get("asset_directives")
    return ProfileConfig(
        name=name,
        menu=str(section.get("menu", name)),
        title=str(section.get("title", name)),
        bench_default=_optional_text(section.get("bench_default")),
        secondary_bench=_optional_text(section.get("secondary_bench")),
        startup_steps=(
            ("prepare-env",) if steps is None else _words(steps, f"{prefix}.startup_steps")
        ),
        asset_directives=(
            CLASSIC_ASSET_DIRECTIVES
            if directives is None
            else _words(directives, f"{prefix}.asset_directives", split=False)
        ),
        **switches,
    )


_TRUTHY = frozenset({"true", "yes", "on", "1"})
_FALSY = frozenset({"false", "no", "off", "0"})


def _flag(value: object, label: str) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUTHY:
        return True
    if word in _FALSY:
        return False
    raise ConfigError(f"{label} must be true or false, not {value!r}.")


def _integer(value: object, label: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be an integer, not {value!r}.")
    try:
        return int(value, 0)
    except ValueError as exc:
        raise ConfigError(f"{label} must be an integer, not {value!r}.") from exc


def _path(value: object, label: str) -> Path:
    if isinstance(value, (str, Path)) and str(value):
        return Path(value).expanduser()
    raise ConfigError(f"{label} must be a filesystem path, not {value!r}.")


def _required_text(value: object, label: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ConfigError(f"{label} must be a non-empty string.")
    return text


def _optional_text(value: object) -> str | None:
    text = "" if value is None else str(value).strip()
    return text or None


def _words(value: object, label: str, *, split: bool = True) -> tuple[str, ...]:
    """Normalise a list of strings; a bare string is split on whitespace when *split*."""
    if isinstance(value, str):
        return tuple(value.split()) if split else (value.strip(),)
    if not isinstance(value, Sequence):
        raise ConfigError(f"{label} must be a list of strings.")
    cleaned = tuple(item.strip() for item in value if isinstance(item, str))
    if len(cleaned) != len(value) or not all(cleaned):
        raise ConfigError(f"{label} must only hold non-empty strings.")
    return cleaned


def _section(value: object, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{label} must be a mapping, not {type(value).__name__}.")
    bad = [key for key in value if not isinstance(key, str)]
    if bad:
        raise ConfigError(f"{label} has non-string keys: {bad!r}.")
    return dict(value)


__all__ = [
    "AppConfig",
    "ConfigError",
    "NodeConfig",
    "ProductionPaths",
    "ProfileConfig",
    "load_config",
]
