"""Emergency rollback from Docker 29.1.5 / containerd 2.2 back to 28.5.1 / 1.7."""

import logging
import os

from .constants import (
    ROLLBACK_LOG_FILE,
    SOURCE_CONTAINERD_VERSION,
    SOURCE_DOCKER_VERSION,
    TARGET_DOCKER_VERSION,
)
from .errors import UpgraderError
from .errors_catalog import actionable_error
from .models import Membership
from .workflow import BaseWorkflow

logger = logging.getLogger("dockerupgrader")


class DockerRollback(BaseWorkflow):
    """Downgrades the packages and restores the containerd config from the latest backup."""

    NAME = "rollback"
    TITLE = f"Docker Rollback: {TARGET_DOCKER_VERSION} → {SOURCE_DOCKER_VERSION}"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.downgrade_plan = []

    @property
    def log_file(self) -> str:
        return self.settings.log_file or ROLLBACK_LOG_FILE

    def execute(self):
        self._run_step("preflight", self.preflight)
        self._run_step("stop_services", self.stop_services)
        self._run_step("downgrade_packages", self.downgrade_packages)
        self._run_step("restore_config", self.restore_config)
        self._run_step("start_services", self.start_services, enable=False)
        self._run_step("verify", self.verify)

    def preflight(self):
        self._banner("Preflight")
        rhel_version = self.detect_rhel_version()

        rollback_dir = os.path.join(self.settings.package_root, f"rollback-rhel{rhel_version}")
        if not os.path.isdir(rollback_dir):
            raise UpgraderError(actionable_error("rollback_dir_missing", path=rollback_dir))

        rpm_files = self.package_service.list_rpms(rollback_dir)
        if not rpm_files:
            raise UpgraderError(actionable_error("no_packages", path=rollback_dir))

        self.context.package_dir = rollback_dir
        logger.info("Using rollback packages from: %s", rollback_dir)
        for rpm_file in rpm_files:
            logger.info("  %s", os.path.basename(rpm_file))

        # resolve both downgrade sets before anything is stopped
        self.downgrade_plan = [
            (
                f"containerd.io to {SOURCE_CONTAINERD_VERSION}",
                self._select(f"containerd.io-{SOURCE_CONTAINERD_VERSION}-*.rpm"),
            ),
            (
                f"docker-ce and docker-ce-cli to {SOURCE_DOCKER_VERSION}",
                self._select(f"docker-ce-{SOURCE_DOCKER_VERSION}-*.rpm")
                + self._select(f"docker-ce-cli-{SOURCE_DOCKER_VERSION}-*.rpm"),
            ),
        ]

        cluster = self.swarm_service.state()
        self.context.cluster = cluster
        if cluster.membership == Membership.ACTIVE:
            self._warn(
                "This node is an active swarm member; its tasks will be interrupted while "
                "services are down."
            )

    def _select(self, pattern: str):
        files = self.package_service.list_rpms(self.context.package_dir, pattern)
        if not files:
            raise UpgraderError(
                actionable_error("rollback_failed", packages=pattern, log_file=self.log_file)
                + f" No file matches {pattern} in {self.context.package_dir}."
            )
        return files

    def _downgrade(self, label: str, files):
        logger.info("Downgrading %s...", label)
        try:
            self.package_service.install_files(files, downgrade=True)
        except UpgraderError as exc:
            raise UpgraderError(
                f"{exc}\n" + actionable_error("rollback_failed", packages=label, log_file=self.log_file)
            ) from exc

    def downgrade_packages(self):
        self._banner("Downgrade Packages")
        for label, files in self.downgrade_plan:
            self._downgrade(label, files)
        logger.info("Packages downgraded.")

    def restore_config(self):
        self._banner("Restore containerd Config")
        backup_config = self.backup_service.latest_config()
        if backup_config:
            logger.info("Restoring containerd config from %s...", os.path.dirname(backup_config))
            self.containerd_service.restore_config(backup_config)
            self.manifest_service.add_artifact("restored_from", backup_config)
            logger.info("Config restored.")
            return

        logger.info("No backup config found, generating default for %s...", SOURCE_CONTAINERD_VERSION)
        self.containerd_service.migrate_config(None)

    def verify(self):
        self._banner("Verification")
        self.report_versions("after")
        self.report_services()

        containerd_version = self.containerd_service.version()
        if containerd_version:
            logger.info("containerd version: %s", containerd_version)

        containers = self.engine_service.containers()
        if containers:
            logger.info("Existing containers:\n%s", containers.rstrip())

        logger.info(
            "NOTE: The DNS fix for custom bridge networks is not available in %s.",
            SOURCE_DOCKER_VERSION,
        )
        if self.context.cluster.is_member:
            logger.info(
                "For swarm nodes, remember to run: docker node update --availability active <node-name>"
            )
