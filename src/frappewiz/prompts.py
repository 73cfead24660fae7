"""Operator input providers.

Steps never read from the terminal directly; they ask a :class:`Prompter`.
Each question carries a stable *key* (``bench.name``, ``site.admin_password``)
so that answers can be scripted from a YAML file for unattended runs.
"""
from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

import typer
import yaml


class PromptError(RuntimeError):
    """Raised when an answer cannot be obtained."""


class Prompter(Protocol):
    """Interface used by pipeline steps to collect operator input."""

    def ask(
        self,
        key: str,
        message: str,
        *,
        default: str | None = None,
        secret: bool = False,
    ) -> str:
        """Return a free-form answer (possibly empty)."""

    def confirm(self, key: str, message: str, *, default: bool = False) -> bool:
        """Return a yes/no answer."""


class ConsolePrompter:
    """Interactive prompter backed by Typer's terminal prompts."""

    def ask(
        self,
        key: str,
        message: str,
        *,
        default: str | None = None,
        secret: bool = False,
    ) -> str:
        """Prompt on the terminal; an empty reply yields *default* or ``""``."""
        answer = typer.prompt(
            message,
            default=default if default is not None else "",
            show_default=bool(default),
            hide_input=secret,
        )
        return str(answer).strip()

    def confirm(self, key: str, message: str, *, default: bool = False) -> bool:
        """Prompt for a yes/no answer."""
        return bool(typer.confirm(message, default=default))


class ScriptedPrompter:
    """Prompter answering from a mapping of prompt keys.

    A scalar value answers every question asked with its key. A list value is
    consumed one entry per question (menu choices, app loops); once it is
    exhausted the key behaves as unanswered. Unanswered questions fall back to
    their default, and raise :class:`PromptError` when there is none.
    """

    def __init__(self, answers: Mapping[str, object] | None = None) -> None:
        """Initialise the prompter with *answers*."""
        self._queued: dict[str, deque[object]] = {}
        self._fixed: dict[str, object] = {}
        for key, value in (answers or {}).items():
            if isinstance(value, list):
                self._queued[str(key)] = deque(value)
            else:
                self._fixed[str(key)] = value
        self.asked: list[str] = []

    @classmethod
    def from_file(cls, path: Path) -> ScriptedPrompter:
        """Load answers from a YAML mapping stored at *path*."""
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise PromptError(f"Failed to read answers file {path}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise PromptError(f"Answers file {path} must contain a mapping at the top level.")
        return cls(data)

    def ask(
        self,
        key: str,
        message: str,
        *,
        default: str | None = None,
        secret: bool = False,
    ) -> str:
        """Return the next scripted answer for *key*."""
        self.asked.append(key)
        value = self._next(key)
        if value is None:
            if default is None:
                raise PromptError(f"No answer provided for '{key}' ({message}).")
            return default
        text = str(value).strip()
        return text if text or default is None else default

    def confirm(self, key: str, message: str, *, default: bool = False) -> bool:
        """Return the next scripted yes/no answer for *key*."""
        self.asked.append(key)
        value = self._next(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"y", "yes", "true", "1"}

    def _next(self, key: str) -> object | None:
        if key in self._fixed:
            return self._fixed[key]
        queue = self._queued.get(key)
        if not queue:
            return None
        return queue.popleft()


__all__ = ["ConsolePrompter", "PromptError", "Prompter", "ScriptedPrompter"]
