"""Docker engine queries and functional checks."""

from typing import List, Optional

from dockerupgrader.constants import DNS_TEST_HOST, TEST_NETWORK_NAME


class DockerEngineService:
    """Thin wrapper over the ``docker`` CLI used for backups and verification."""

    def __init__(self, runner, logger):
        self.runner = runner
        self.logger = logger

    def capture(self, args: List[str]) -> Optional[str]:
        """Return combined output of ``docker <args>``, or ``None`` if it failed."""
        result = self.runner.run(["docker", *args], check=False)
        output = (result.stdout or "") + (result.stderr or "")
        if result.returncode != 0:
            self.logger.debug("docker %s exited with %s", " ".join(args), result.returncode)
            return None
        return output

    def version(self) -> Optional[str]:
        return self.capture(["version"])

    def containers(self) -> Optional[str]:
        return self.capture(["ps", "-a"])

    def images(self) -> Optional[str]:
        return self.capture(["images"])

    def networks(self) -> Optional[str]:
        return self.capture(["network", "ls"])

    def check_dns(self, image: str, network: str = TEST_NETWORK_NAME, host: str = DNS_TEST_HOST) -> bool:
        """Resolve ``host`` from a throwaway container on a user-defined bridge."""
        self.runner.run(["docker", "network", "create", network], check=False)
        try:
            result = self.runner.run(
                ["docker", "run", "--rm", "--network", network, image, "nslookup", host],
                check=False,
                echo=True,
            )
            return result.returncode == 0
        finally:
            self.runner.run(["docker", "network", "rm", network], check=False)

    def check_gpu(self, image: str) -> bool:
        result = self.runner.run(
            ["docker", "run", "--rm", "--gpus", "all", image, "nvidia-smi"],
            check=False,
            echo=True,
        )
        return result.returncode == 0
