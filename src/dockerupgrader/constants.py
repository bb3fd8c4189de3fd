"""Shared constants for dockerupgrader."""

SOURCE_DOCKER_VERSION = "28.5.1"
TARGET_DOCKER_VERSION = "29.1.5"
SOURCE_CONTAINERD_VERSION = "1.7.29"
TARGET_CONTAINERD_VERSION = "2.2.1"

ENGINE_SERVICE = "docker"
ENGINE_SOCKET = "docker.socket"
RUNTIME_SERVICE = "containerd"

DOCKER_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
)
TOOLKIT_PACKAGE = "nvidia-container-toolkit"
TOOLKIT_PACKAGES = (
    "nvidia-container-toolkit",
    "nvidia-container-toolkit-base",
    "libnvidia-container-tools",
    "libnvidia-container1",
)
RELATED_PACKAGE_PATTERN = r"(docker|containerd)"

DEFAULT_PACKAGE_ROOT = "/opt/docker-offline"
DEFAULT_BACKUP_ROOT = "/root"
DEFAULT_CONTAINERD_CONFIG = "/etc/containerd/config.toml"
DEFAULT_DATA_ROOT = "/var/lib/containerd"
DEFAULT_REPOSITORY_ID = "docker-local"
DEFAULT_CONFIG_FILE = ".docker-upgrader.yml"

UPGRADE_LOG_FILE = "/var/log/docker-upgrade.log"
ROLLBACK_LOG_FILE = "/var/log/docker-rollback.log"
RECOVER_LOG_FILE = "/var/log/docker-recover.log"
MANIFEST_FILE = "/var/log/docker-{workflow}-manifest.json"

BACKUP_PREFIX = "docker-backup-"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
BACKUP_CONFIG_NAME = "config.toml"
DIR_MODE = 0o700

STRATEGY_DIRECT = "direct"
STRATEGY_REPOSITORY = "repository"
TRANSITION_STRATEGIES = (STRATEGY_DIRECT, STRATEGY_REPOSITORY)

SENSITIVE_FILESYSTEM = "xfs"

TEST_NETWORK_NAME = "test-upgrade-net"
DNS_TEST_HOST = "google.com"
