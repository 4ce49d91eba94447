"""
Dependency install step run after a successful merge.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from pydantic import BaseModel

from koharu.logging import get_logger

logger = get_logger(__name__)


class InstallResult(BaseModel):
    """Outcome of the install command."""

    success: bool
    returncode: int | None = None
    error: str | None = None


class DependencyInstaller:
    """
    Runs the configured install command in the project root.

    Attributes:
        command: Command line to run.
        cwd: Working directory.
        timeout: Timeout in seconds.
        env_file: Environment file whose absence is reported as a warning.
    """

    def __init__(
        self,
        command: list[str],
        cwd: Path,
        *,
        timeout: float = 900,
        env_file: Path | None = None,
    ) -> None:
        self.command = list(command)
        self.cwd = cwd
        self.timeout = timeout
        self.env_file = env_file

    def install(self) -> InstallResult:
        """
        Run the install command.

        Returns:
            InstallResult; failures to start, timeouts and non-zero exits are
            reported in it rather than raised.
        """
        if self.env_file is not None and not self.env_file.exists():
            logger.warning(
                "Environment file not found; build and deploy steps may fail",
                extra={"env_file": str(self.env_file)},
            )

        logger.info("Installing dependencies", extra={"command": self.command})
        try:
            result = subprocess.run(
                self.command,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return InstallResult(
                success=False, error=f"Command not found: {self.command[0]}"
            )
        except subprocess.TimeoutExpired as e:
            return InstallResult(
                success=False, error=f"Install timed out after {e.timeout}s"
            )

        if result.returncode != 0:
            output = result.stderr.strip() or result.stdout.strip()
            logger.error(
                "Dependency install failed",
                extra={"returncode": result.returncode, "stderr": result.stderr.strip()},
            )
            return InstallResult(
                success=False,
                returncode=result.returncode,
                error=output or f"exited with status {result.returncode}",
            )

        return InstallResult(success=True, returncode=0)
