"""systemd service lifecycle for the engine and runtime units."""

import time
from typing import Callable, Dict

from dockerupgrader.constants import ENGINE_SERVICE, ENGINE_SOCKET, RUNTIME_SERVICE
from dockerupgrader.errors import UpgraderError
from dockerupgrader.errors_catalog import actionable_error
from dockerupgrader.services.polling import poll


class ServiceManager:
    """Stops and starts docker/containerd in dependency order.

    The engine depends on the runtime, so the engine always goes down first and
    comes up last.
    """

    def __init__(
        self,
        runner,
        logger,
        settle_seconds: float = 2.0,
        runtime_ready_seconds: float = 5.0,
        poll_interval: float = 1.0,
        poll_attempts: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runner = runner
        self.logger = logger
        self.settle_seconds = settle_seconds
        self.runtime_ready_seconds = runtime_ready_seconds
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.sleep = sleep

    def is_active(self, service: str) -> bool:
        result = self.runner.run(["systemctl", "is-active", service], check=False)
        return result.returncode == 0 and (result.stdout or "").strip() == "active"

    def status(self) -> Dict[str, bool]:
        return {service: self.is_active(service) for service in (ENGINE_SERVICE, RUNTIME_SERVICE)}

    def report_status(self):
        for service, active in self.status().items():
            self.logger.info("  %s: %s", service, "running" if active else "not running")

    def stop(self, *units: str):
        # "already stopped" or a missing unit is not an error here
        result = self.runner.run(["systemctl", "stop", *units], check=False)
        if result.returncode != 0:
            self.logger.warning("systemctl stop %s exited with %s", " ".join(units), result.returncode)

    def start(self, service: str):
        self.runner.run(["systemctl", "start", service], echo=True)

    def enable(self, *services: str):
        self.runner.run(["systemctl", "enable", *services], echo=True)

    def wait_active(self, service: str):
        result = poll(
            lambda: (self.is_active(service), None),
            interval=self.poll_interval,
            max_attempts=self.poll_attempts,
            sleep=self.sleep,
        )
        if not result.converged:
            raise UpgraderError(actionable_error("service_not_active", service=service))

    def stop_stack(self):
        self.logger.info("Stopping %s...", ENGINE_SERVICE)
        self.stop(ENGINE_SERVICE, ENGINE_SOCKET)
        self.sleep(self.settle_seconds)

        self.logger.info("Stopping %s...", RUNTIME_SERVICE)
        self.stop(RUNTIME_SERVICE)
        self.sleep(self.settle_seconds)
        self.logger.info("Services stopped.")

    def start_stack(self, enable: bool = True):
        self.logger.info("Starting %s...", RUNTIME_SERVICE)
        try:
            self.start(RUNTIME_SERVICE)
        except UpgraderError as exc:
            raise UpgraderError(
                f"{exc}\n{actionable_error('service_not_active', service=RUNTIME_SERVICE)}"
            ) from exc

        self.logger.info("Waiting %.0fs for %s to initialize...", self.runtime_ready_seconds, RUNTIME_SERVICE)
        self.sleep(self.runtime_ready_seconds)
        self.wait_active(RUNTIME_SERVICE)

        self.logger.info("Starting %s...", ENGINE_SERVICE)
        try:
            self.start(ENGINE_SERVICE)
        except UpgraderError as exc:
            raise UpgraderError(
                f"{exc}\n{actionable_error('service_not_active', service=ENGINE_SERVICE)}"
            ) from exc
        self.wait_active(ENGINE_SERVICE)

        if enable:
            self.enable(RUNTIME_SERVICE, ENGINE_SERVICE)
        self.logger.info("Services started.")
