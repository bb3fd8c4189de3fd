"""Shared plumbing for the upgrade, rollback and recovery workflows."""

import logging
import socket
import time
import uuid
from datetime import datetime
from typing import Callable, Optional

from rich.console import Console

from .constants import DOCKER_PACKAGES
from .errors import UpgraderError
from .errors_catalog import actionable_error
from .models import RunContext, Settings
from .prompts import ConsoleOperator
from .services.backup import BackupService
from .services.command_runner import CommandRunner
from .services.engine import DockerEngineService
from .services.filesystem import FilesystemService
from .services.manifest import ManifestService
from .services.packages import PackageService
from .services.runtime import ContainerdService
from .services.swarm import SwarmService
from .services.systemd import ServiceManager

console = Console()
logger = logging.getLogger("dockerupgrader")


class BaseWorkflow:
    """Wires the host collaborators and runs named phases with manifest tracking.

    Subclasses implement :meth:`execute`; :meth:`run` turns its outcome into an
    exit code. ``runner``, ``operator`` and ``sleep`` can be replaced to drive a
    workflow without touching the host.
    """

    NAME = "workflow"
    TITLE = "Workflow"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        operator=None,
        runner=None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or Settings()
        self.operator = operator or ConsoleOperator()
        self.sleep = sleep
        self.command_runner = runner or CommandRunner(logger=logger)
        self.context = RunContext(run_id=uuid.uuid4().hex[:10])
        self.current_step_name: Optional[str] = None

        manifest_file = self.settings.manifest_file
        if manifest_file:
            manifest_file = manifest_file.replace("{workflow}", self.NAME)
        self.manifest_service = ManifestService(manifest_file=manifest_file, logger=logger)

        self.package_service = PackageService(self.command_runner, logger)
        self.service_manager = ServiceManager(
            self.command_runner,
            logger,
            settle_seconds=self.settings.settle_seconds,
            runtime_ready_seconds=self.settings.runtime_ready_seconds,
            poll_interval=self.settings.service_poll_interval,
            poll_attempts=self.settings.service_poll_attempts,
            sleep=self.sleep,
        )
        self.containerd_service = ContainerdService(
            self.command_runner, logger, config_path=self.settings.containerd_config
        )
        self.engine_service = DockerEngineService(self.command_runner, logger)
        self.swarm_service = SwarmService(self.command_runner, logger)
        self.filesystem_service = FilesystemService(self.command_runner, logger)
        self.backup_service = BackupService(self.settings.backup_root, logger, now=now)

    def execute(self):
        raise NotImplementedError

    def _banner(self, title: str):
        console.rule(f"[bold blue]{title}")
        logger.info("=== %s ===", title)

    def _warn(self, message: str):
        logger.warning(message)
        self.manifest_service.add_warning(message)

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.manifest_service.phase_started(name)
        self.current_step_name = name

        try:
            result = callback(*args, **kwargs)
        except BaseException as exc:
            self.manifest_service.phase_finished(name, "failed", error=str(exc) or type(exc).__name__)
            raise

        self.manifest_service.phase_finished(name, "success")
        self.current_step_name = None
        return result

    def detect_rhel_version(self) -> str:
        value = self.package_service.rhel_major_version()
        if not value.isdigit():
            raise UpgraderError(actionable_error("unsupported_os", value=value or "<empty>"))
        self.context.rhel_version = value
        self.manifest_service.set_fact("rhel_version", value)
        logger.info("Detected RHEL version: %s", value)
        return value

    def report_versions(self, stage: str):
        versions = self.package_service.installed_versions(DOCKER_PACKAGES)
        logger.info("Installed packages:")
        for name, installed in versions.items():
            logger.info("  %s: %s", name, installed or "not installed")
        self.manifest_service.set_versions(stage, versions)
        return versions

    def report_services(self):
        logger.info("Service status:")
        self.service_manager.report_status()

    def stop_services(self):
        self._banner("Stop Services")
        self.service_manager.stop_stack()

    def start_services(self, enable: bool = True):
        self._banner("Start Services")
        self.service_manager.start_stack(enable=enable)

    def run(self) -> int:
        status = "failed"
        error: Optional[str] = None

        self._banner(self.TITLE)
        logger.info("Server: %s", socket.gethostname())
        logger.info("Date: %s", datetime.now().strftime("%a %b %d %H:%M:%S %Y"))
        self.manifest_service.start_run(run_id=self.context.run_id, workflow=self.NAME)

        try:
            self.execute()
            status = "complete"
            return 0
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            status = "aborted"
            error = "Operation cancelled by user."
            return 1
        except UpgraderError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            status = "aborted"
            error = str(exc)
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            status = "aborted"
            error = str(exc)
            return 1
        finally:
            self.manifest_service.finalize(status, error=error)
            if status == "complete":
                self._banner(f"{self.NAME.upper()} COMPLETE")
            elif self.current_step_name:
                logger.error("Stopped during phase: %s", self.current_step_name)
