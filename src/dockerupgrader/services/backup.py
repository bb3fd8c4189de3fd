"""Pre-upgrade backup record creation and lookup."""

import glob
import os
import shutil
from datetime import datetime
from typing import Callable, Optional

from dockerupgrader.constants import (
    BACKUP_CONFIG_NAME,
    BACKUP_PREFIX,
    BACKUP_TIMESTAMP_FORMAT,
    DIR_MODE,
)
from dockerupgrader.errors import UpgraderError
from dockerupgrader.errors_catalog import actionable_error


class BackupService:
    """Creates the timestamped backup directory a rollback restores from."""

    def __init__(self, backup_root: str, logger, now: Callable[[], datetime] = datetime.now):
        self.backup_root = backup_root
        self.logger = logger
        self.now = now

    def create_dir(self) -> str:
        path = os.path.join(
            self.backup_root,
            f"{BACKUP_PREFIX}{self.now().strftime(BACKUP_TIMESTAMP_FORMAT)}",
        )
        try:
            os.makedirs(path, mode=DIR_MODE, exist_ok=False)
        except OSError as exc:
            raise UpgraderError(actionable_error("backup_failed", path=path, error=str(exc))) from exc
        return path

    def save_text(self, backup_dir: str, name: str, content: Optional[str]) -> bool:
        if content is None:
            self.logger.warning("Backup item %s could not be captured; continuing.", name)
            return False
        try:
            with open(os.path.join(backup_dir, name), "w", encoding="utf-8") as file_obj:
                file_obj.write(content)
        except OSError as exc:
            self.logger.warning("Could not write backup item %s: %s", name, exc)
            return False
        return True

    def save_file(self, backup_dir: str, source: str, name: str = BACKUP_CONFIG_NAME) -> bool:
        if not os.path.isfile(source):
            self.logger.info("No %s to back up; continuing.", source)
            return False
        try:
            shutil.copy2(source, os.path.join(backup_dir, name))
        except OSError as exc:
            self.logger.warning("Could not copy %s into backup: %s", source, exc)
            return False
        return True

    def latest(self) -> Optional[str]:
        candidates = [
            path
            for path in glob.glob(os.path.join(self.backup_root, f"{BACKUP_PREFIX}*"))
            if os.path.isdir(path)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda path: (os.path.getmtime(path), path))

    def latest_config(self) -> Optional[str]:
        backup_dir = self.latest()
        if not backup_dir:
            return None
        config_path = os.path.join(backup_dir, BACKUP_CONFIG_NAME)
        return config_path if os.path.isfile(config_path) else None
