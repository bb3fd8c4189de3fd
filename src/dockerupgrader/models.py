"""Shared domain models for dockerupgrader."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .constants import (
    DEFAULT_BACKUP_ROOT,
    DEFAULT_CONTAINERD_CONFIG,
    DEFAULT_PACKAGE_ROOT,
    DEFAULT_REPOSITORY_ID,
    MANIFEST_FILE,
    STRATEGY_DIRECT,
)


class Membership(str, Enum):
    NONE = "none"
    DRAINED = "drained"
    ACTIVE = "active"


class FsStatus(str, Enum):
    OK = "ok"
    BAD = "bad"
    UNKNOWN = "unknown"


class PollOutcome(str, Enum):
    CONVERGED = "converged"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class Settings:
    """Tunables for a single run, resolved from defaults, config file and CLI."""

    package_root: str = DEFAULT_PACKAGE_ROOT
    backup_root: str = DEFAULT_BACKUP_ROOT
    containerd_config: str = DEFAULT_CONTAINERD_CONFIG
    manifest_file: Optional[str] = MANIFEST_FILE
    log_file: Optional[str] = None
    transition_strategy: str = STRATEGY_DIRECT
    repository_id: str = DEFAULT_REPOSITORY_ID
    settle_seconds: float = 2.0
    runtime_ready_seconds: float = 5.0
    service_poll_interval: float = 1.0
    service_poll_attempts: int = 10
    drain_poll_interval: float = 5.0
    drain_poll_attempts: int = 24
    reactivation_poll_interval: float = 5.0
    reactivation_poll_attempts: int = 24
    dns_test_image: str = "alpine:latest"
    gpu_test_image: str = "nvidia/cuda:12.0-base"
    dry_run: bool = False
    verbose: bool = False


@dataclass(frozen=True)
class ClusterState:
    """Swarm participation of the local node."""

    membership: Membership = Membership.NONE
    node_id: Optional[str] = None
    is_manager: bool = False
    availability: Optional[str] = None

    @property
    def is_member(self) -> bool:
        return self.membership != Membership.NONE


@dataclass(frozen=True)
class FilesystemCheck:
    path: str
    mount_point: Optional[str]
    fs_type: Optional[str]
    ftype: Optional[int]
    status: FsStatus

    def describe(self) -> str:
        if self.fs_type is None:
            return "filesystem type unknown"
        if self.ftype is None:
            return f"{self.fs_type} on {self.mount_point}"
        return f"{self.fs_type} ftype={self.ftype} on {self.mount_point}"


@dataclass(frozen=True)
class PollResult:
    outcome: PollOutcome
    value: Any = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def converged(self) -> bool:
        return self.outcome == PollOutcome.CONVERGED


@dataclass
class RunContext:
    """State threaded through the phases of one upgrade run."""

    run_id: str
    rhel_version: Optional[str] = None
    package_dir: Optional[str] = None
    backup_dir: Optional[str] = None
    toolkit_installed: bool = False
    cluster: ClusterState = field(default_factory=ClusterState)
    drained_by_run: bool = False
    data_root: Optional[str] = None
