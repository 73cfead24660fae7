"""Shared fixtures: a recording ``subprocess.run`` and wizard contexts."""

from __future__ import annotations

import io
from datetime import UTC, datetime, timedelta
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from rich.console import Console

from frappewiz.config import AppConfig, load_config
from frappewiz.logging import StructuredLogger
from frappewiz.pipeline import Pipeline, WizardContext, create_context
from frappewiz.prompts import ScriptedPrompter
from frappewiz.runner import CommandRunner
from frappewiz.steps import REGISTRY


def certificate_bytes(common_name: str, *, days: int = 90, der: bool = False) -> bytes:
    """Return a self-signed certificate for *common_name* valid for *days*."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=days))
        .sign(key, hashes.SHA256())
    )
    encoding = serialization.Encoding.DER if der else serialization.Encoding.PEM
    return cert.public_bytes(encoding)


@dataclass
class DummyCompleted:
    """Stand-in for ``subprocess.CompletedProcess``."""

    returncode: int = 0
    stdout: str = ""
    stderr: str = ""


@dataclass
class _Rule:
    prefix: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    missing: bool
    effect: Callable[[], None] | None


@dataclass
class SubprocessRecorder:
    """Record every command and answer from prefix-matched rules."""

    calls: list[tuple[str, ...]] = field(default_factory=list)
    kwargs: list[dict[str, object]] = field(default_factory=list)
    _rules: list[_Rule] = field(default_factory=list)

    def respond(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        missing: bool = False,
        effect: Callable[[], None] | None = None,
    ) -> None:
        """Answer commands starting with *prefix* (later rules win)."""
        self._rules.append(_Rule(tuple(prefix), returncode, stdout, stderr, missing, effect))

    def __call__(self, args: list[str], **kwargs: object) -> DummyCompleted:
        command = tuple(args)
        self.calls.append(command)
        self.kwargs.append(kwargs)
        for rule in reversed(self._rules):
            if command[: len(rule.prefix)] == rule.prefix:
                if rule.effect is not None:
                    rule.effect()
                if rule.missing:
                    raise FileNotFoundError(command[0])
                return DummyCompleted(rule.returncode, rule.stdout, rule.stderr)
        return DummyCompleted()

    def ran(self, *prefix: str) -> bool:
        """Return True when any recorded command starts with *prefix*."""
        return any(call[: len(prefix)] == prefix for call in self.calls)

    def find(self, *prefix: str) -> list[tuple[str, ...]]:
        """Return recorded commands starting with *prefix*."""
        return [call for call in self.calls if call[: len(prefix)] == prefix]


@pytest.fixture
def fake_subprocess(monkeypatch: pytest.MonkeyPatch) -> SubprocessRecorder:
    """Replace ``subprocess.run`` with a recorder."""
    recorder = SubprocessRecorder()
    monkeypatch.setattr("subprocess.run", recorder)
    return recorder


@pytest.fixture
def fake_which(monkeypatch: pytest.MonkeyPatch) -> dict[str, str | None]:
    """Control ``shutil.which``; binaries default to missing."""
    table: dict[str, str | None] = {}

    def _which(name: str, mode: int = 0, path: str | None = None) -> str | None:
        return table.get(name)

    monkeypatch.setattr("shutil.which", _which)
    return table


@pytest.fixture
def app_config(tmp_path: Path) -> Callable[..., AppConfig]:
    """Build an :class:`AppConfig` rooted in ``tmp_path``."""

    def _build(**overrides: object) -> AppConfig:
        values: dict[str, object] = {
            "home": str(tmp_path / "home"),
            "ssh_key": str(tmp_path / "ssh" / "id_rsa"),
            "paths": {
                "nginx_conf_dir": str(tmp_path / "etc" / "nginx"),
                "supervisor_conf_dir": str(tmp_path / "etc" / "supervisor"),
            },
        }
        values.update(overrides)
        return load_config(tmp_path / "missing.yml", env={}, overrides=values)

    return _build


@dataclass
class Harness:
    """A wizard context wired to in-memory console and scripted answers."""

    context: WizardContext
    pipeline: Pipeline
    output: io.StringIO

    @property
    def text(self) -> str:
        return self.output.getvalue()


@pytest.fixture
def make_harness(
    app_config: Callable[..., AppConfig],
    tmp_path: Path,
) -> Callable[..., Harness]:
    """Return a factory producing :class:`Harness` objects."""

    def _make(
        profile: str = "classic",
        answers: Mapping[str, object] | None = None,
        *,
        dry_run: bool = False,
        resolver: Callable[..., list[tuple[object, ...]]] | None = None,
        **overrides: object,
    ) -> Harness:
        config = app_config(**overrides)
        output = io.StringIO()
        console = Console(file=output, width=200, color_system=None)
        kwargs: dict[str, object] = {}
        if resolver is not None:
            kwargs["resolver"] = resolver
        context = create_context(
            config,
            config.profile(profile),
            prompter=ScriptedPrompter(answers or {}),
            runner=CommandRunner(env={"PATH": "/usr/bin"}, dry_run=dry_run),
            logger=StructuredLogger(tmp_path / "logs"),
            console=console,
            user="frappe",
            **kwargs,  # type: ignore[arg-type]
        )
        return Harness(context=context, pipeline=Pipeline(context, REGISTRY), output=output)

    return _make


BENCH_NGINX_CONF = """\
upstream frappe-bench-frappe {
\tserver 127.0.0.1:8000 fail_timeout=0;
}

upstream frappe-bench-socketio-server {
\tserver 127.0.0.1:9000 fail_timeout=0;
}

# setup maps

# server blocks

server {
\tlisten 80;
\tlisten [::]:80;

\tserver_name
\t\tsite1.local
\t\t;

\troot /home/frappe/frappe-bench/sites;

\tproxy_buffer_size 128k;
\tproxy_buffers 4 256k;

\tadd_header X-Frame-Options "SAMEORIGIN";
\tadd_header Strict-Transport-Security "max-age=63072000; includeSubDomains; preload";
\tadd_header X-XSS-Protection "1; mode=block";

\tlocation /assets {
\t\ttry_files $uri =404;
\t\tadd_header Cache-Control "max-age=31536000";
\t}

\tlocation ~ ^/protected/(.*) {
\t\tinternal;
\t\ttry_files /site1.local/$1 =404;
\t}

\tlocation / {

\t\trewrite ^(.+)/$ $1 permanent;
\t\trewrite ^(.+)/index\\.html$ $1 permanent;
\t\trewrite ^(.+)\\.html$ $1 permanent;

\t\tlocation ~ ^/files/.*.(htm|html|svg|xml) {
\t\t\tadd_header Content-disposition "attachment";
\t\t\ttry_files /site1.local/public/$uri @webserver;
\t\t}

\t\ttry_files /site1.local/public/$uri @webserver;
\t}

\tlocation @webserver {
\t\tproxy_http_version 1.1;
\t\tproxy_set_header X-Forwarded-For $remote_addr;
\t\tproxy_set_header Host $host;
\t\tproxy_read_timeout 120;
\t\tproxy_redirect off;

\t\tproxy_pass  http://frappe-bench-frappe;
\t}

\t# error pages
\terror_page 502 /502.html;
\tlocation /502.html {
\t\troot /home/frappe/.bench/bench/config/templates;
\t\tinternal;
\t}

\taccess_log  /var/log/nginx/access.log main;
\terror_log  /var/log/nginx/error.log;

\tclient_max_body_size 50m;
\tgzip on;
\tgzip_types
\t\tapplication/javascript
\t\ttext/css
\t\t;
}
"""


@pytest.fixture
def bench_nginx_conf() -> str:
    """Return a config shaped like ``bench setup nginx`` output."""
    return BENCH_NGINX_CONF
