"""containerd runtime services for dockerupgrader."""

import os
import shutil
import tempfile
from typing import Optional

from dockerupgrader.errors import UpgraderError
from dockerupgrader.errors_catalog import actionable_error


class ContainerdService:
    """Queries containerd and owns writes to its configuration file."""

    def __init__(self, runner, logger, config_path: str):
        self.runner = runner
        self.logger = logger
        self.config_path = config_path

    def version(self) -> Optional[str]:
        result = self.runner.run(["containerd", "--version"], check=False)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip() or None

    def default_config(self) -> str:
        result = self.runner.run(["containerd", "config", "default"])
        return result.stdout or ""

    def migrated_config(self, source_path: str) -> Optional[str]:
        result = self.runner.run(["containerd", "config", "migrate", source_path], check=False)
        if result.returncode != 0:
            self.logger.debug("containerd config migrate exited with %s", result.returncode)
            return None
        content = result.stdout or ""
        return content if content.strip() else None

    def migrate_config(self, backup_config: Optional[str]) -> str:
        """Write a config valid for the installed containerd and return how it was produced.

        A previous config is migrated to the current schema when available; a failed
        migration or a missing previous config falls back to ``containerd config default``.
        """
        content = None
        origin = "default"

        if backup_config and os.path.isfile(backup_config):
            self.logger.info("Migrating config from 1.x to 2.x format...")
            content = self.migrated_config(backup_config)
            if content is None:
                self.logger.warning("Migration failed, generating default config...")
            else:
                origin = "migrated"
        else:
            self.logger.info("No previous config found, using defaults...")

        if content is None:
            try:
                content = self.default_config()
            except UpgraderError as exc:
                raise UpgraderError(
                    actionable_error(
                        "config_generation_failed", path=self.config_path, error=str(exc)
                    )
                ) from exc
            if not content.strip():
                raise UpgraderError(
                    actionable_error(
                        "config_generation_failed",
                        path=self.config_path,
                        error="`containerd config default` produced no output",
                    )
                )

        self.write_config(content)
        return origin

    def restore_config(self, backup_config: str):
        try:
            os.makedirs(os.path.dirname(self.config_path) or ".", exist_ok=True)
            shutil.copy2(backup_config, self.config_path)
        except OSError as exc:
            raise UpgraderError(
                actionable_error(
                    "config_restore_failed",
                    source=backup_config,
                    path=self.config_path,
                    error=str(exc),
                )
            ) from exc

    def read_config(self) -> str:
        try:
            with open(self.config_path, "r", encoding="utf-8") as file_obj:
                return file_obj.read()
        except FileNotFoundError:
            return ""

    def write_config(self, content: str):
        directory = os.path.dirname(self.config_path) or "."
        os.makedirs(directory, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix=".config-", suffix=".toml", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
                if not content.endswith("\n"):
                    file_obj.write("\n")
            os.replace(temp_path, self.config_path)
        except OSError as exc:
            raise UpgraderError(
                actionable_error("config_generation_failed", path=self.config_path, error=str(exc))
            ) from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
