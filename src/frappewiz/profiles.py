"""Menu layouts for the wizard profiles."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from .config import ProfileConfig


@dataclass(frozen=True, slots=True)
class MenuItem:
    """One numbered menu entry: the steps it runs and the answers it presets."""

    label: str
    steps: tuple[str, ...] = ()
    presets: Mapping[str, object] = field(default_factory=dict)
    exit: bool = False


@dataclass(frozen=True, slots=True)
class Menu:
    """A titled, numbered list of menu items."""

    title: str
    items: tuple[MenuItem, ...]
    farewell: str

    def choice(self, raw: str) -> MenuItem | None:
        """Return the item selected by *raw* (1-based), or None when invalid."""
        try:
            index = int(raw.strip())
        except ValueError:
            return None
        if 1 <= index <= len(self.items):
            return self.items[index - 1]
        return None

    def prompt(self) -> str:
        return f"Choose an option [1-{len(self.items)}]"


def build_menu(profile: ProfileConfig) -> Menu:
    """Return the menu for *profile*."""
    if profile.menu == "enhanced":
        return _enhanced_menu(profile)
    return _classic_menu(profile)


def _classic_menu(profile: ProfileConfig) -> Menu:
    items = [
        MenuItem("Setup SSH and Git Configuration", ("setup-ssh", "setup-git")),
        MenuItem("Setup Site", ("new-site",)),
    ]
    if profile.bench_default:
        items.append(
            MenuItem(
                f"Setup Default Frappe Bench ({profile.bench_default})",
                ("init-bench",),
                {"bench.name": profile.bench_default},
            )
        )
    if profile.secondary_bench:
        items.extend(
            [
                MenuItem(
                    f"Setup {profile.secondary_bench}",
                    ("init-bench",),
                    {"bench.name": profile.secondary_bench},
                ),
                MenuItem(
                    f"Setup Site on {profile.secondary_bench}",
                    ("new-site",),
                    {"site.bench": profile.secondary_bench},
                ),
            ]
        )
    items.extend(
        [
            MenuItem("Only Get App", ("get-apps",)),
            MenuItem("Setup Production (Supervisor + Nginx + SSL)", ("setup-production",)),
            MenuItem("Exit", exit=True),
        ]
    )
    return Menu(
        title=profile.title,
        items=tuple(items),
        farewell="Goodbye from Frappe Setup Wizard!",
    )


def _enhanced_menu(profile: ProfileConfig) -> Menu:
    return Menu(
        title=profile.title,
        items=(
            MenuItem(
                "Complete Setup (System Dependencies + MySQL + SSH/Git)",
                (
                    "install-deps",
                    "install-node",
                    "install-yarn",
                    "setup-mysql",
                    "setup-ssh",
                    "setup-git",
                    "setup-venv",
                ),
            ),
            MenuItem("Create Bench", ("init-bench",)),
            MenuItem("Create Site", ("new-site",)),
            MenuItem("Exit", exit=True),
        ),
        farewell="Thanks for using Frappe Setup Wizard!",
    )


__all__ = ["Menu", "MenuItem", "build_menu"]
