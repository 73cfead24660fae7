"""Setup wizard for self-hosted Frappe benches.

The wizard installs the host toolchain, creates benches and sites, and wires
supervisor, nginx and certbot for production. Run ``frappewiz --help`` for
the command line.
"""
from __future__ import annotations

# Kept in step with ``pyproject.toml``.
__version__ = "0.1.0"

__all__ = ["__version__"]
