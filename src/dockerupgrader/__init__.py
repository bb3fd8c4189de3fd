"""
dockerupgrader - Offline Docker Engine and containerd upgrade tool for RHEL hosts
"""

__version__ = "1.0.0"

from .core import DockerUpgrader, UpgraderError

__all__ = ["DockerUpgrader", "UpgraderError"]
