"""Entities assembled while the wizard runs."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .tls import CertificateInfo


class TLSState(str, Enum):
    """Certificate status of a production bench."""

    NONE = "none"
    SKIPPED = "skipped"
    ISSUED = "issued"


@dataclass(frozen=True, slots=True)
class InstallTarget:
    """A system package and whether it was already present."""

    package: str
    installed: bool


@dataclass(frozen=True, slots=True)
class BenchInstance:
    """A bench directory under the wizard home."""

    name: str
    path: Path
    frappe_version: str | None = None


@dataclass(frozen=True, slots=True)
class SiteInstance:
    """A site created inside a bench."""

    bench: BenchInstance
    name: str
    db_root_username: str = "root"
    db_root_password: str | None = field(default=None, repr=False)
    admin_password: str | None = field(default=None, repr=False)


@dataclass(slots=True)
class ProductionConfig:
    """Production wiring state for a bench, filled in step by step."""

    bench: BenchInstance
    site: str | None = None
    domain: str | None = None
    tls_state: TLSState = TLSState.NONE
    certificate: CertificateInfo | None = None
    supervisor_linked: bool = False
    nginx_linked: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "bench": self.bench.name,
            "bench_path": str(self.bench.path),
            "site": self.site,
            "domain": self.domain,
            "tls_state": self.tls_state.value,
            "certificate": self.certificate.to_dict() if self.certificate else None,
            "supervisor_linked": self.supervisor_linked,
            "nginx_linked": self.nginx_linked,
        }


__all__ = [
    "BenchInstance",
    "InstallTarget",
    "ProductionConfig",
    "SiteInstance",
    "TLSState",
]
