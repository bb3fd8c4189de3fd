"""dnf/rpm dependency recovery after a failed or partial upgrade."""

import logging

from .constants import DOCKER_PACKAGES
from .errors import UpgraderError
from .workflow import BaseWorkflow

logger = logging.getLogger("dockerupgrader")


class PackageRecovery(BaseWorkflow):
    NAME = "recover"
    TITLE = "DNF Dependency Recovery"

    def execute(self):
        self._run_step("clean_caches", self.clean_caches)
        self._run_step("rebuild_rpm_db", self.rebuild_db)
        self._run_step("check_dependencies", self.check_dependencies)
        self._run_step("verify_packages", self.verify_packages)
        self._run_step("list_packages", self.list_packages)
        self._run_step("distro_sync", self.offer_distro_sync)

    def clean_caches(self):
        self._banner("Step 1: Cleaning dnf caches")
        self.package_service.clean_caches()
        logger.info("Caches cleaned.")

    def rebuild_db(self):
        self._banner("Step 2: Rebuilding RPM database")
        self.package_service.rebuild_db()
        logger.info("RPM database rebuilt.")

    def check_dependencies(self) -> bool:
        self._banner("Step 3: Checking for dependency issues")
        healthy = self.package_service.dnf_check()
        if healthy:
            logger.info("No dependency issues found.")
        else:
            self._warn("Dependency issues detected!")
        self.manifest_service.set_fact("dnf_check_passed", healthy)
        return healthy

    def verify_packages(self):
        self._banner("Step 4: Identifying potentially broken packages")
        logger.info("Running rpm verification (may take a moment)...")
        broken = self.package_service.verify_related()
        if not broken:
            logger.info("No obvious issues with Docker packages.")
            return
        logger.warning("Potentially broken Docker packages:")
        for line in broken:
            logger.warning("  %s", line)
        self.manifest_service.set_fact("rpm_verify_findings", broken)

    def list_packages(self):
        self._banner("Step 5: Current Docker package state")
        packages = self.package_service.related_packages()
        logger.info("Installed Docker-related packages:")
        if not packages:
            logger.info("  (none found)")
        for package in packages:
            logger.info("  %s", package)

    def offer_distro_sync(self):
        repository_id = self.settings.repository_id
        if not self.operator.confirm(
            f"Run dnf distro-sync against the `{repository_id}` repository now?",
            default=False,
        ):
            logger.info("Skipping distro-sync. Remember: stop docker before containerd, start containerd first.")
            return

        self._banner("Running distro-sync")
        self.service_manager.stop_stack()
        try:
            self.package_service.repo_distro_sync(repository_id, DOCKER_PACKAGES)
        except UpgraderError as exc:
            raise UpgraderError(
                f"{exc}\nServices were left stopped. Try `docker-upgrader rollback` or reinstall "
                f"from the `{repository_id}` repository."
            ) from exc
        self.service_manager.start_stack(enable=False)

        logger.info("Recovery complete. Verifying...")
        self.report_versions("after")
        containerd_version = self.containerd_service.version()
        if containerd_version:
            logger.info("containerd version: %s", containerd_version)
