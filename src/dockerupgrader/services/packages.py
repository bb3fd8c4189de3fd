"""rpm/dnf package services for dockerupgrader."""

import glob
import os
import re
from typing import Dict, Iterable, List, Optional

from dockerupgrader.constants import (
    RELATED_PACKAGE_PATTERN,
    STRATEGY_DIRECT,
    TRANSITION_STRATEGIES,
)
from dockerupgrader.errors import UpgraderError


class PackageService:
    """Queries and transitions RPM packages from a local, offline source."""

    def __init__(self, runner, logger):
        self.runner = runner
        self.logger = logger

    def rhel_major_version(self) -> str:
        result = self.runner.run(["rpm", "-E", "%rhel"], check=False)
        return (result.stdout or "").strip()

    def is_installed(self, package: str) -> bool:
        return self.runner.run(["rpm", "-q", package], check=False).returncode == 0

    def installed_versions(self, packages: Iterable[str]) -> Dict[str, Optional[str]]:
        """Return ``{name: version}`` with ``None`` for packages that are not installed."""
        names = list(packages)
        result = self.runner.run(
            ["rpm", "-q", "--queryformat", "%{NAME} %{VERSION}\\n", *names],
            check=False,
        )
        versions: Dict[str, Optional[str]] = {name: None for name in names}
        for line in (result.stdout or "").splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[0] in versions:
                versions[parts[0]] = parts[1]
        return versions

    def related_packages(self) -> List[str]:
        result = self.runner.run(["rpm", "-qa"], check=False)
        pattern = re.compile(RELATED_PACKAGE_PATTERN)
        return sorted(line.strip() for line in (result.stdout or "").splitlines() if pattern.search(line))

    def list_rpms(self, directory: str, pattern: str = "*.rpm") -> List[str]:
        return sorted(glob.glob(os.path.join(directory, pattern)))

    def dnf_check(self) -> bool:
        return self.runner.run(["dnf", "check"], check=False, echo=True).returncode == 0

    def clean_caches(self):
        self.runner.run(["dnf", "clean", "all"], echo=True)

    def rebuild_db(self):
        self.runner.run(["rpm", "--rebuilddb"], echo=True)

    def verify_related(self) -> List[str]:
        result = self.runner.run(["rpm", "-Va", "--nofiles", "--nodigest"], check=False)
        pattern = re.compile(RELATED_PACKAGE_PATTERN)
        return [line for line in (result.stdout or "").splitlines() if pattern.search(line)]

    def install_files(self, rpm_files: List[str], downgrade: bool = False):
        if not rpm_files:
            raise UpgraderError("No RPM files given to install.")
        flag = "--oldpackage" if downgrade else "--force"
        self.runner.run(["rpm", "-Uvh", flag, *rpm_files], echo=True)

    def repo_install(self, repository_id: str, packages: Iterable[str]) -> bool:
        result = self.runner.run(
            [
                "dnf",
                "install",
                "-y",
                "--disablerepo=*",
                f"--enablerepo={repository_id}",
                *packages,
            ],
            check=False,
            echo=True,
        )
        return result.returncode == 0

    def repo_distro_sync(self, repository_id: str, packages: Iterable[str]):
        self.runner.run(
            [
                "dnf",
                "distro-sync",
                "-y",
                "--disablerepo=*",
                f"--enablerepo={repository_id}",
                "--allowerasing",
                *packages,
            ],
            echo=True,
        )

    def transition(
        self,
        strategy: str,
        package_dir: str,
        packages: Iterable[str],
        repository_id: str,
    ):
        """Move the given packages to the versions shipped in ``package_dir``.

        ``direct`` installs every RPM file in the directory with ``rpm -Uvh --force``
        and needs no repository metadata. ``repository`` runs a plain ``dnf install``
        (tolerating "nothing to do") followed by ``dnf distro-sync --allowerasing``
        against the local repository. Failure of the mandatory step raises.
        """
        if strategy not in TRANSITION_STRATEGIES:
            raise UpgraderError(
                f"Unknown transition strategy `{strategy}`. "
                f"Use one of: {', '.join(TRANSITION_STRATEGIES)}."
            )

        if strategy == STRATEGY_DIRECT:
            rpm_files = self.list_rpms(package_dir)
            if not rpm_files:
                raise UpgraderError(f"No RPM packages found in {package_dir}")
            for rpm_file in rpm_files:
                self.logger.info("  %s", os.path.basename(rpm_file))
            self.install_files(rpm_files)
            return

        package_list = list(packages)
        self.clean_caches()
        if not self.repo_install(repository_id, package_list):
            self.logger.warning("dnf install did not complete cleanly; resolving with distro-sync.")
        self.repo_distro_sync(repository_id, package_list)
