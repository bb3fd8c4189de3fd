"""Subprocess execution service for dockerupgrader."""

import subprocess
from typing import List, Optional

from dockerupgrader.errors import UpgraderError


class CommandRunner:
    """Runs host commands with consistent error handling and transcript logging."""

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = True,
        timeout: Optional[float] = None,
        echo: bool = False,
    ) -> subprocess.CompletedProcess:
        """Run ``cmd`` and return the completed process.

        With ``echo`` the command's stdout/stderr is logged line by line at INFO,
        so it reaches both the console and the run log file. Otherwise output is
        only logged at DEBUG.
        """
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                timeout=effective_timeout,
            )
        except FileNotFoundError as exc:
            raise UpgraderError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise UpgraderError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except OSError as exc:
            raise UpgraderError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output:
            self._log_output(result.stdout, echo)
            if echo:
                self._log_output(result.stderr, echo)

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise UpgraderError(message)

        self.logger.debug(message)
        return result

    def _log_output(self, output: Optional[str], echo: bool):
        if not output:
            return
        if not echo:
            self.logger.debug("Command output: %s", output.strip())
            return
        for line in output.rstrip().splitlines():
            self.logger.info("  %s", line)
