import logging
import os
from typing import Dict, List, Optional

import tomli
from packaging import version

from .constants import (
    BACKUP_CONFIG_NAME,
    DOCKER_PACKAGES,
    SOURCE_DOCKER_VERSION,
    STRATEGY_DIRECT,
    TARGET_CONTAINERD_VERSION,
    TARGET_DOCKER_VERSION,
    TOOLKIT_PACKAGE,
    TOOLKIT_PACKAGES,
    UPGRADE_LOG_FILE,
)
from .errors import OperatorAbort, UpgraderError
from .errors_catalog import actionable_error
from .models import FilesystemCheck, FsStatus, Membership, PollOutcome
from .services.filesystem import parsed_data_root, resolve_data_root, rewrite_data_root
from .services.polling import poll
from .workflow import BaseWorkflow, console

logger = logging.getLogger("dockerupgrader")


class DockerUpgrader(BaseWorkflow):
    """Upgrades Docker Engine and containerd from an offline package bundle."""

    NAME = "upgrade"
    TITLE = f"Docker Upgrade: {SOURCE_DOCKER_VERSION} → {TARGET_DOCKER_VERSION}"

    EXPECTED_VERSIONS = {
        "docker-ce": TARGET_DOCKER_VERSION,
        "docker-ce-cli": TARGET_DOCKER_VERSION,
        "containerd.io": TARGET_CONTAINERD_VERSION,
    }

    PLAN = (
        "Detect RHEL version and package directory",
        "Drain swarm node (if active member)",
        "Snapshot package versions and service state",
        "Back up engine state and containerd config",
        "Stop docker, then containerd",
        "Transition packages ({strategy} strategy)",
        "Migrate containerd config to the 2.x schema",
        "Check the containerd data root filesystem",
        "Upgrade NVIDIA Container Toolkit ({toolkit})",
        "Start containerd, then docker",
        "Verify versions, services and networking",
        "Return swarm node to active (if drained by this run)",
    )

    @property
    def log_file(self) -> str:
        return self.settings.log_file or UPGRADE_LOG_FILE

    def execute(self):
        self._run_step("preflight", self.preflight)

        if self.settings.dry_run:
            self._run_step("cluster_query", self.query_cluster)
            self.print_plan()
            return

        self._run_step("cluster_membership", self.handle_cluster)
        self._run_step("snapshot", self.snapshot)
        self._run_step("backup", self.backup)
        self._run_step("stop_services", self.stop_services)
        self._run_step("package_transition", self.transition_packages)
        self._run_step("migrate_config", self.migrate_config)
        self._run_step("filesystem_gate", self.filesystem_gate)
        if self.context.toolkit_installed:
            self._run_step("toolkit_transition", self.transition_toolkit)
        self._run_step("start_services", self.start_services)
        self._run_step("verify", self.verify)
        self._run_step("cluster_reactivation", self.reactivate_cluster)

        logger.info("Expected versions:")
        logger.info("  - docker-ce: %s", TARGET_DOCKER_VERSION)
        logger.info("  - containerd.io: %s", TARGET_CONTAINERD_VERSION)
        logger.info("Backup kept at: %s", self.context.backup_dir)

    def preflight(self):
        self._banner("Preflight")
        rhel_version = self.detect_rhel_version()

        package_dir = os.path.join(self.settings.package_root, f"rhel{rhel_version}")
        if not os.path.isdir(package_dir):
            raise UpgraderError(
                actionable_error(
                    "package_dir_missing", path=package_dir, root=self.settings.package_root
                )
            )
        if not self.package_service.list_rpms(package_dir):
            raise UpgraderError(actionable_error("no_packages", path=package_dir))

        self.context.package_dir = package_dir
        logger.info("Using packages from: %s", package_dir)

        self.context.toolkit_installed = self.package_service.is_installed(TOOLKIT_PACKAGE)
        if self.context.toolkit_installed:
            logger.info("NVIDIA Container Toolkit detected - will upgrade")
        self.manifest_service.set_fact("toolkit_installed", self.context.toolkit_installed)
        self.manifest_service.set_fact("transition_strategy", self.settings.transition_strategy)

    def query_cluster(self):
        cluster = self.swarm_service.state()
        self.context.cluster = cluster
        self.manifest_service.set_fact("cluster_membership", cluster.membership.value)
        self.manifest_service.set_fact("cluster_manager", cluster.is_manager)
        return cluster

    def print_plan(self):
        toolkit = "detected" if self.context.toolkit_installed else "skipped, not installed"
        console.print("[bold]Dry run: no changes will be made.[/bold]")
        logger.info("Planned phases:")
        for index, step in enumerate(self.PLAN, start=1):
            logger.info(
                "  %2d. %s",
                index,
                step.format(strategy=self.settings.transition_strategy, toolkit=toolkit),
            )
        logger.info("Swarm membership: %s", self.context.cluster.membership.value)

    def handle_cluster(self):
        self._banner("Swarm Membership")
        cluster = self.query_cluster()

        if not cluster.is_member:
            logger.info("Node is not part of a swarm.")
            return

        if cluster.membership == Membership.DRAINED:
            logger.info("Swarm node %s is already drained.", cluster.node_id)
            return

        if not cluster.is_manager:
            self._warn(
                "This node is an active swarm worker. Its availability can only be changed "
                "from a manager node."
            )
            if not self.operator.confirm("Continue without draining this node?", default=False):
                raise OperatorAbort(
                    actionable_error("drain_aborted", reason="the worker node was not drained")
                )
            self._warn("Continuing on an undrained worker; service disruption is possible.")
            return

        logger.info("Swarm manager node %s is active.", cluster.node_id)
        if not self.operator.confirm(f"Drain swarm node {cluster.node_id} before upgrading?", default=True):
            self._warn("Node was not drained; running services may be disrupted.")
            return

        self.swarm_service.set_availability(cluster.node_id, "drain")
        self.context.drained_by_run = True
        self.manifest_service.set_fact("drained_by_run", True)

        result = poll(
            lambda: self._tasks_drained(cluster.node_id),
            interval=self.settings.drain_poll_interval,
            max_attempts=self.settings.drain_poll_attempts,
            sleep=self.sleep,
        )
        if result.converged:
            logger.info("All tasks have moved off this node.")
            return

        remaining: List[str] = result.value or []
        if result.outcome == PollOutcome.ERROR:
            self._warn(f"Could not list tasks on this node: {result.error}")
        else:
            logger.warning("%s task(s) still scheduled on this node:", len(remaining))
            for task in remaining:
                logger.warning("  %s", task)

        if not self.operator.confirm("Proceed with the upgrade anyway?", default=False):
            logger.warning(
                "Node %s is left drained. Reactivate with: docker node update --availability active %s",
                cluster.node_id,
                cluster.node_id,
            )
            raise OperatorAbort(
                actionable_error(
                    "drain_aborted", reason=f"{len(remaining)} task(s) still on the node"
                )
            )
        self._warn("Proceeding with tasks still scheduled on the node.")

    def _tasks_drained(self, node_id: str):
        tasks = self.swarm_service.running_tasks(node_id)
        return not tasks, tasks

    def snapshot(self):
        self._banner("Phase 1: Pre-upgrade Verification")

        logger.info("Checking dnf state...")
        if not self.package_service.dnf_check():
            self._warn("dnf has issues. Attempting cleanup...")
            try:
                self.package_service.clean_caches()
                self.package_service.rebuild_db()
            except UpgraderError as exc:
                self._warn(f"dnf cleanup failed: {exc}")

        self.report_versions("before")
        self.report_services()

    def backup(self):
        self._banner("Phase 2: Backup")
        backup_dir = self.backup_service.create_dir()
        self.context.backup_dir = backup_dir
        self.manifest_service.add_artifact("backup_dir", backup_dir)

        save = self.backup_service.save_text
        save(backup_dir, "docker-version.txt", self.engine_service.version())
        save(backup_dir, "containerd-version.txt", self.containerd_service.version())
        save(backup_dir, "containers.txt", self.engine_service.containers())
        save(backup_dir, "images.txt", self.engine_service.images())
        save(backup_dir, "networks.txt", self.engine_service.networks())
        self.backup_service.save_file(backup_dir, self.settings.containerd_config)
        related = self.package_service.related_packages()
        save(backup_dir, "packages.txt", "\n".join(related) + "\n" if related else None)

        logger.info("Backup saved to: %s", backup_dir)

    def transition_packages(self):
        self._banner("Phase 4: Upgrade Packages")
        strategy = self.settings.transition_strategy
        logger.info("Installing packages from %s (%s strategy)", self.context.package_dir, strategy)

        try:
            self.package_service.transition(
                strategy,
                self.context.package_dir,
                DOCKER_PACKAGES,
                self.settings.repository_id,
            )
        except UpgraderError as exc:
            raise UpgraderError(
                f"{exc}\n"
                + actionable_error(
                    "package_transition_failed", strategy=strategy, log_file=self.log_file
                )
            ) from exc
        logger.info("Packages upgraded.")

    def migrate_config(self):
        self._banner("Phase 5: Migrate containerd Config")
        backup_config = None
        if self.context.backup_dir:
            backup_config = os.path.join(self.context.backup_dir, BACKUP_CONFIG_NAME)
        origin = self.containerd_service.migrate_config(backup_config)
        self.manifest_service.set_fact("config_origin", origin)
        logger.info("containerd config written to %s (%s).", self.settings.containerd_config, origin)

    def filesystem_gate(self):
        self._banner("Phase 6: Filesystem Compatibility Check")
        data_root = resolve_data_root(self.containerd_service.read_config())
        self.context.data_root = data_root

        check = self.filesystem_service.check(data_root)
        logger.info("containerd data root %s: %s", data_root, check.describe())

        if check.status == FsStatus.OK:
            return
        if check.status == FsStatus.UNKNOWN:
            self._warn(f"Could not determine the filesystem of {data_root}; continuing.")
            return

        logger.error(
            "%s is on xfs without ftype=1; overlay snapshots will not work there.", data_root
        )
        self._remediate_data_root(check)

    def _remediate_data_root(self, failed: FilesystemCheck):
        while True:
            candidate = self.operator.prompt(
                "Enter an alternative containerd data root (leave empty to abort)"
            )
            if not candidate:
                raise OperatorAbort(
                    actionable_error(
                        "filesystem_incompatible", path=failed.path, detail=failed.describe()
                    )
                )
            if not os.path.isabs(candidate):
                logger.warning("The data root must be an absolute path: %s", candidate)
                continue

            candidate = os.path.normpath(candidate)
            parent = os.path.dirname(candidate)
            if not os.path.isdir(parent):
                if not self.operator.confirm(f"{parent} does not exist. Create it?", default=True):
                    continue
                try:
                    os.makedirs(parent, exist_ok=True)
                except OSError as exc:
                    logger.error("Could not create %s: %s", parent, exc)
                    continue

            check = self.filesystem_service.check(candidate)
            logger.info("Candidate %s: %s", candidate, check.describe())

            if check.status == FsStatus.BAD:
                logger.warning("%s is also on an incompatible filesystem.", candidate)
                continue
            if check.status == FsStatus.UNKNOWN and not self.operator.confirm(
                f"Filesystem of {candidate} could not be determined. Use it anyway?",
                default=False,
            ):
                continue

            self._apply_data_root(candidate)
            return

    def _apply_data_root(self, data_root: str):
        config_path = self.settings.containerd_config
        updated = rewrite_data_root(self.containerd_service.read_config(), data_root)
        self._verify_data_root(updated, data_root)
        self.containerd_service.write_config(updated)
        self._verify_data_root(self.containerd_service.read_config(), data_root)

        self.context.data_root = data_root
        self.manifest_service.set_fact("data_root", data_root)
        logger.info("containerd data root set to %s in %s.", data_root, config_path)
        logger.warning("Existing images and containers under the previous data root are not moved.")

    def _verify_data_root(self, config_text: str, data_root: str):
        config_path = self.settings.containerd_config
        try:
            configured = parsed_data_root(config_text)
        except tomli.TOMLDecodeError as exc:
            raise UpgraderError(
                actionable_error("data_root_unverified", config=config_path, path=data_root)
                + f" The config is not valid TOML: {exc}"
            ) from exc
        if configured != data_root:
            raise UpgraderError(
                actionable_error("data_root_unverified", config=config_path, path=data_root)
            )

    def transition_toolkit(self):
        self._banner("Phase 7: Upgrade NVIDIA Container Toolkit")
        toolkit_dir = os.path.join(self.settings.package_root, "nvidia")
        if not self.package_service.list_rpms(toolkit_dir):
            self._warn(f"NVIDIA packages not found in {toolkit_dir}")
            return

        # toolkit RPMs are not part of the local repository
        try:
            self.package_service.transition(
                STRATEGY_DIRECT,
                toolkit_dir,
                TOOLKIT_PACKAGES,
                self.settings.repository_id,
            )
        except UpgraderError as exc:
            self._warn(f"NVIDIA toolkit package transition failed: {exc}")

        for runtime in ("docker", "containerd"):
            try:
                self.command_runner.run(
                    ["nvidia-ctk", "runtime", "configure", f"--runtime={runtime}"],
                    echo=True,
                )
            except UpgraderError as exc:
                self._warn(f"nvidia-ctk could not configure the {runtime} runtime: {exc}")
        logger.info("NVIDIA toolkit step finished.")

    def verify(self):
        self._banner("Phase 8: Verification")
        versions = self.report_versions("after")
        self._check_expected_versions(versions)

        docker_version = self.engine_service.version()
        if docker_version:
            logger.info("Docker version:\n%s", docker_version.rstrip())
        containerd_version = self.containerd_service.version()
        if containerd_version:
            logger.info("containerd version: %s", containerd_version)

        self.report_services()

        logger.info("Testing DNS resolution on a custom bridge network:")
        if self.engine_service.check_dns(self.settings.dns_test_image):
            logger.info("SUCCESS: DNS resolution works!")
        else:
            logger.info(
                "NOTE: DNS test did not pass (expected in air-gapped environments without %s)",
                self.settings.dns_test_image,
            )

        containers = self.engine_service.containers()
        if containers:
            logger.info("Existing containers:\n%s", containers.rstrip())

        if self.context.toolkit_installed:
            logger.info("Testing NVIDIA GPU access:")
            if self.engine_service.check_gpu(self.settings.gpu_test_image):
                logger.info("SUCCESS: GPU access works!")
            else:
                logger.info(
                    "NOTE: GPU test requires the %s image to be available",
                    self.settings.gpu_test_image,
                )

    def _check_expected_versions(self, installed: Dict[str, Optional[str]]):
        for name, expected in self.EXPECTED_VERSIONS.items():
            current = installed.get(name)
            if current is None:
                self._warn(f"{name} is not installed after the upgrade.")
                continue
            try:
                matches = version.parse(current) == version.parse(expected)
            except version.InvalidVersion:
                matches = current == expected
            if not matches:
                self._warn(f"{name} is at {current}, expected {expected}.")

    def reactivate_cluster(self):
        cluster = self.context.cluster
        if cluster.membership != Membership.ACTIVE:
            return
        if not cluster.is_manager:
            logger.info(
                "Remember to return this worker to active from a manager: "
                "docker node update --availability active <node-name>"
            )
            return

        self._banner("Swarm Reactivation")
        current = self.swarm_service.state()
        if current.membership != Membership.DRAINED:
            logger.info("Swarm node %s is %s; nothing to reactivate.", cluster.node_id, current.availability)
            return

        if not self.operator.confirm(f"Return swarm node {cluster.node_id} to active?", default=True):
            self._warn(
                "Node left drained. Reactivate later with: "
                f"docker node update --availability active {cluster.node_id}"
            )
            return

        try:
            self.swarm_service.set_availability(cluster.node_id, "active")
        except UpgraderError as exc:
            self._warn(f"Could not reactivate swarm node: {exc}")
            return

        result = poll(
            self._services_settled,
            interval=self.settings.reactivation_poll_interval,
            max_attempts=self.settings.reactivation_poll_attempts,
            sleep=self.sleep,
        )
        if result.converged:
            logger.info("Swarm node is active and all services have converged.")
        elif result.outcome == PollOutcome.TIMED_OUT:
            self._warn("Some services are still settling after reactivation:")
            for service in result.value or []:
                logger.warning("  %s", service)
        else:
            self._warn(f"Could not check service convergence: {result.error}")

    def _services_settled(self):
        pending = self.swarm_service.unsettled_services()
        return not pending, pending
