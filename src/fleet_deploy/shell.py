"""
Subprocess helper for external tools (build commands, terraform).
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of a finished command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(
    command: List[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    """
    Run a command and capture its output.

    Args:
        command: Command and arguments
        cwd: Working directory
        env: Variables merged over the current environment

    Returns:
        CommandResult; a command that cannot be started yields returncode 127
    """
    logger.debug(f"Running command: {' '.join(command)}")

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            env=process_env,
            capture_output=True,
            text=True,
            check=False,
            # Keep the terminal's Ctrl+C away from the child; the first
            # interrupt only stops the fleet after the current site
            start_new_session=True,
        )
    except OSError as e:
        logger.error(f"Failed to run command {command[0]}: {e}")
        return CommandResult(127, "", str(e))

    if result.returncode != 0:
        logger.debug(f"Command failed with code {result.returncode}")

    return CommandResult(result.returncode, result.stdout, result.stderr)
