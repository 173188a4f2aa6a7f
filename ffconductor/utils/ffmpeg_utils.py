"""
This module provides utility functions for running the external ffmpeg tools:
a command runner that returns a structured result, command display
formatting, and parsing of the progress tokens ffmpeg writes while it works.
"""

import os
import re
import shlex
import subprocess
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..domain.exceptions import ExecutableNotFoundError


def display_command(cmd_list: List[str]) -> str:
    """
    Formats a command list as a single string that can be pasted into a shell.

    Uses `subprocess.list2cmdline` on Windows and `shlex.join` elsewhere.
    """
    if os.name == "nt":
        return subprocess.list2cmdline(cmd_list)
    return shlex.join(cmd_list)


def split_arguments(arguments: str) -> List[str]:
    """
    Splits a rendered ffmpeg argument string back into a list.

    The rendered strings quote paths with double quotes, which `shlex` in POSIX
    mode understands.
    """
    return shlex.split(arguments, posix=True)


def append_command_log(cmd_log_file_path: Path, display_cmd_str: str):
    """Appends a command line to a command log file, creating the folder if needed."""
    try:
        cmd_log_file_path.parent.mkdir(parents=True, exist_ok=True)
        with cmd_log_file_path.open("a", encoding="utf-8") as cmd_f:
            cmd_f.write(display_cmd_str + "\n")
    except OSError as e:
        logger.error(f"Failed to write command to log file {cmd_log_file_path}: {e}")


def run_cmd(
    cmd_list: List[str],
    show_cmd: bool = False,
    cmd_log_file_path: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    """
    Executes an external command and captures its output.

    A non-zero exit code is an expected outcome for ffprobe/ffmpeg and is
    reported through the returned `CompletedProcess`, never raised. Only a
    command that cannot be started at all raises.

    Args:
        cmd_list: The command and its arguments. The first element is the
                  executable.
        show_cmd: If True, the command is logged at the DEBUG level before
                  execution (TRACE otherwise).
        cmd_log_file_path: If provided, the command line is appended to this file.

    Returns:
        A `subprocess.CompletedProcess` with the return code, stdout and stderr.

    Raises:
        ExecutableNotFoundError: If the executable does not exist.
    """
    if not cmd_list:
        raise ValueError("run_cmd received an empty command list.")

    display_cmd_str = display_command(cmd_list)
    if show_cmd:
        logger.debug(f"Executing: {display_cmd_str}")
    else:
        logger.trace(f"Executing: {display_cmd_str}")

    if cmd_log_file_path:
        append_command_log(cmd_log_file_path, display_cmd_str)

    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            shell=False,
        )
    except FileNotFoundError as e:
        logger.error(
            f"Command not found: '{cmd_list[0]}'. Ensure it's in your system's PATH or configured correctly."
        )
        raise ExecutableNotFoundError(f"Executable not found: {cmd_list[0]}") from e

    if result.stdout and len(result.stdout) > 500:
        logger.trace(f"Command stdout (truncated): {result.stdout[:500]}...")
    elif result.stdout:
        logger.trace(f"Command stdout: {result.stdout}")

    if result.stderr and result.returncode != 0:
        logger.debug(f"Command stderr (error, rc={result.returncode}): {result.stderr}")
    elif result.stderr:
        logger.trace(f"Command stderr (non-error, rc={result.returncode}): {result.stderr}")

    return result


# --- Progress Parsing ---
# ffmpeg reports its position as "time=HH:MM:SS.xx" on every stats line.
_PROGRESS_TIME_PATTERN = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


def parse_progress_time(line: str) -> Optional[timedelta]:
    """
    Extracts the processed media time from an ffmpeg stats line.

    Args:
        line: One line of ffmpeg diagnostic output.

    Returns:
        The elapsed media time, or None if the line has no (valid) time token,
        e.g. "time=N/A".
    """
    match = _PROGRESS_TIME_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return timedelta(hours=int(hours), minutes=int(minutes), seconds=float(seconds))
