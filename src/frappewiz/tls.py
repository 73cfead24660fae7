"""TLS helpers: domain readiness checks, certbot issuance, certificate inspection."""
from __future__ import annotations

import re
import socket
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID

from .runner import CommandResult, CommandRunner

Resolver = Callable[..., list[tuple[object, ...]]]


class DomainResolutionError(RuntimeError):
    """Raised when a domain does not resolve to any address."""


class TLSInspectionError(RuntimeError):
    """Raised when an issued certificate cannot be read."""


def validate_domain(value: str) -> str:
    """Validate and normalise a domain/FQDN."""
    normalised = value.strip().lower().rstrip(".")
    if not normalised:
        raise ValueError("Domain must be a non-empty string.")
    if len(normalised) > 253:
        raise ValueError("Domain must be 253 characters or fewer.")
    if normalised.startswith("-") or normalised.endswith("-"):
        raise ValueError("Domain cannot start or end with a hyphen.")
    if not re.fullmatch(r"[a-z0-9.-]+", normalised):
        raise ValueError("Domain may contain letters, numbers, dots, and hyphens.")
    if ".." in normalised:
        raise ValueError("Domain cannot contain empty labels.")
    return normalised


def resolve_domain(domain: str, *, resolver: Resolver = socket.getaddrinfo) -> tuple[str, ...]:
    """Return the addresses *domain* resolves to.

    Raises :class:`DomainResolutionError` when the lookup fails or yields
    nothing.
    """
    try:
        entries = resolver(domain, None)
    except (socket.gaierror, UnicodeError) as exc:
        raise DomainResolutionError(f"Could not resolve IP for domain {domain}: {exc}") from exc
    addresses: list[str] = []
    for entry in entries:
        sockaddr = entry[4] if len(entry) > 4 else None
        if isinstance(sockaddr, tuple) and sockaddr:
            address = str(sockaddr[0])
            if address not in addresses:
                addresses.append(address)
    if not addresses:
        raise DomainResolutionError(f"Could not resolve IP for domain {domain}.")
    return tuple(addresses)


@dataclass(frozen=True)
class CertificateInfo:
    """Summary of an issued certificate."""

    path: Path
    subject: str
    not_valid_before: datetime
    not_valid_after: datetime

    def days_remaining(self, now: datetime | None = None) -> int:
        """Return whole days until expiry (negative once expired)."""
        moment = now or datetime.now(UTC)
        return (self.not_valid_after - moment).days

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "path": str(self.path),
            "subject": self.subject,
            "not_valid_before": self.not_valid_before.isoformat(),
            "not_valid_after": self.not_valid_after.isoformat(),
        }


def parse_certificate(data: bytes, path: Path) -> CertificateInfo:
    """Summarise PEM (or DER) certificate *data* that was read from *path*."""
    try:
        cert = x509.load_pem_x509_certificate(data)
    except ValueError:
        try:
            cert = x509.load_der_x509_certificate(data)
        except ValueError as exc:
            raise TLSInspectionError(f"{path} is not a valid certificate: {exc}") from exc
    names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    subject = str(names[0].value) if names else cert.subject.rfc4514_string()
    return CertificateInfo(
        path=path,
        subject=subject,
        not_valid_before=_as_utc(cert.not_valid_before_utc),
        not_valid_after=_as_utc(cert.not_valid_after_utc),
    )


@dataclass(slots=True)
class CertbotProvider:
    """Issue Let's Encrypt certificates through certbot's nginx plugin."""

    runner: CommandRunner
    live_dir: Path = Path("/etc/letsencrypt/live")
    certbot_bin: str = "certbot"

    def issue(self, domain: str) -> CommandResult:
        """Run ``certbot --nginx -d <domain>`` attached to the terminal."""
        return self.runner.run(
            [self.certbot_bin, "--nginx", "-d", domain],
            sudo=True,
            capture_output=False,
        )

    def certificate_path(self, domain: str) -> Path:
        """Return the live certificate path for *domain*."""
        return self.live_dir / domain / "cert.pem"

    def inspect(self, domain: str) -> CertificateInfo | None:
        """Return certificate details, or None when the certificate is unavailable.

        certbot keeps ``live/`` readable by root only, so the PEM is fetched
        with ``sudo cat``.
        """
        path = self.certificate_path(domain)
        result = self.runner.probe(["cat", str(path)], sudo=True)
        if not result.ok or not result.stdout.strip():
            return None
        try:
            return parse_certificate(result.stdout.encode("utf-8"), path)
        except TLSInspectionError:
            return None


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


__all__ = [
    "CertbotProvider",
    "CertificateInfo",
    "DomainResolutionError",
    "TLSInspectionError",
    "parse_certificate",
    "resolve_domain",
    "validate_domain",
]
