"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI.

    Every fatal condition (failed external command, refused superuser run,
    broken configuration) collapses onto ``FAILURE``.
    """

    OK = 0
    FAILURE = 1
