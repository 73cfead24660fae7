"""Provider interfaces for frappewiz."""
from __future__ import annotations

from .apt import AptEnsureResult, AptProvider
from .bench import BenchProvider, app_name_from_url
from .git import GitProvider, SshKeyManager
from .mariadb import MariaDBProvider
from .nginx import NginxPatchResult, NginxProvider
from .node import NodeRuntimeManager, NodeVersionInfo, YarnManager
from .python_env import VenvEnsureResult, VirtualEnvManager, activated_environment
from .supervisor import SupervisorProvider
from .systemd import SystemdProvider

__all__ = [
    "AptEnsureResult",
    "AptProvider",
    "BenchProvider",
    "GitProvider",
    "MariaDBProvider",
    "NginxPatchResult",
    "NginxProvider",
    "NodeRuntimeManager",
    "NodeVersionInfo",
    "SshKeyManager",
    "SupervisorProvider",
    "SystemdProvider",
    "VenvEnsureResult",
    "VirtualEnvManager",
    "YarnManager",
    "activated_environment",
    "app_name_from_url",
]
