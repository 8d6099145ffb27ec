"""Running external commands (du, tmutil)."""

import logging
import subprocess

from tmsize.errors import (
    CommandExecutionError,
    CommandNotFoundError,
    CommandPermissionError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600


class CommandRunner:
    """Synchronous process runner returning the command's text output."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def run(self, command: str, arguments: list[str] | None = None) -> str:
        """
        Run a command and return its standard output.

        Args:
            command: Executable name or path
            arguments: Arguments passed to the command

        Returns:
            Captured standard output

        Raises:
            CommandNotFoundError: The executable does not exist
            CommandPermissionError: Execution was refused
            CommandExecutionError: Non-zero exit or timeout
        """
        argv = [command, *(arguments or [])]
        display = " ".join(argv)
        logger.debug("Running %s", display)

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise CommandNotFoundError(display, f"Command not found: {command}") from e
        except PermissionError as e:
            raise CommandPermissionError(display, f"Permission denied: {command}") from e
        except subprocess.TimeoutExpired as e:
            raise CommandExecutionError(
                display, f"Command timed out after {self.timeout:g} seconds"
            ) from e

        if result.returncode != 0:
            output = (result.stderr or "") + (result.stdout or "")
            if "Permission denied" in output or "Operation not permitted" in output:
                raise CommandPermissionError(display, f"Permission denied: {display}", output)
            raise CommandExecutionError(
                display, f"{display} exited with status {result.returncode}", output
            )

        return result.stdout
