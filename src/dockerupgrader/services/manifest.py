"""Run manifest generation service."""

import json
import os
import socket
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ManifestService:
    """Records phase outcomes of a run as JSON for post-mortem diagnosis."""

    def __init__(self, manifest_file: Optional[str], logger):
        self.manifest_file = manifest_file
        self.logger = logger
        self.manifest: Dict[str, Any] = {
            "run_id": None,
            "workflow": None,
            "host": socket.gethostname(),
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "facts": {},
            "versions": {"before": {}, "after": {}},
            "phases": [],
            "warnings": [],
            "artifacts": {},
            "error": None,
        }

    def start_run(self, run_id: str, workflow: str, facts: Optional[Dict[str, Any]] = None):
        self.manifest["run_id"] = run_id
        self.manifest["workflow"] = workflow
        self.manifest["status"] = "running"
        self.manifest["started_at"] = self._now()
        self.manifest["facts"] = dict(facts or {})
        self.write()

    def set_fact(self, key: str, value: Any):
        self.manifest["facts"][key] = value
        self.write()

    def set_versions(self, stage: str, versions: Dict[str, Optional[str]]):
        self.manifest["versions"][stage] = dict(versions)
        self.write()

    def add_warning(self, message: str):
        self.manifest["warnings"].append(message)
        self.write()

    def phase_started(self, name: str):
        self.manifest["phases"].append(
            {
                "name": name,
                "status": "running",
                "started_at": self._now(),
                "finished_at": None,
                "duration_seconds": None,
                "error": None,
            }
        )
        self.write()

    def phase_finished(self, name: str, status: str, error: Optional[str] = None):
        for phase in reversed(self.manifest["phases"]):
            if phase["name"] == name and phase["status"] == "running":
                phase["status"] = status
                phase["finished_at"] = self._now()
                phase["error"] = error
                phase["duration_seconds"] = self._elapsed(phase["started_at"], phase["finished_at"])
                break
        self.write()

    def add_artifact(self, key: str, value: str):
        self.manifest["artifacts"][key] = value
        self.write()

    def finalize(self, status: str, error: Optional[str] = None):
        self.manifest["status"] = status
        self.manifest["finished_at"] = self._now()
        if self.manifest.get("started_at"):
            self.manifest["duration_seconds"] = self._elapsed(
                self.manifest["started_at"], self.manifest["finished_at"]
            )
        self.manifest["error"] = error
        self.write()

    def write(self):
        if not self.manifest_file:
            return

        directory = os.path.dirname(self.manifest_file) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix=".run-manifest-", suffix=".json", dir=directory)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            return

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.manifest, file_obj, indent=2, sort_keys=True, default=str)
                file_obj.write("\n")
            os.replace(temp_path, self.manifest_file)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    @staticmethod
    def _elapsed(started_at: str, finished_at: str) -> float:
        return (datetime.fromisoformat(finished_at) - datetime.fromisoformat(started_at)).total_seconds()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
