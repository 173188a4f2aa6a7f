"""
This module contains helper functions for formatting values into the textual
forms ffmpeg expects, and into human-readable strings for logging.
"""

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Union


def format_timedelta(td_object: timedelta) -> str:
    """
    Formats a timedelta object into a "HH:MM:SS" string for display.

    Args:
        td_object: The timedelta object to format.

    Returns:
        A string in HH:MM:SS format, e.g. 7261 seconds becomes "02:01:01".
        Returns "00:00:00" if the input is not a timedelta.
    """
    if not isinstance(td_object, timedelta):
        return "00:00:00"

    total_seconds = int(td_object.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def to_ffmpeg_time(value: Union[timedelta, float, int]) -> str:
    """
    Formats a duration as an ffmpeg time specification ("HH:MM:SS.mmm").

    Hours are not wrapped at 24, so long recordings keep their full offset.

    Args:
        value: A timedelta or a number of seconds.

    Returns:
        The time specification, e.g. 3725.5 seconds becomes "01:02:05.500".
    """
    if isinstance(value, timedelta):
        total_ms = int(round(value.total_seconds() * 1000))
    else:
        total_ms = int(round(float(value) * 1000))
    total_ms = max(total_ms, 0)
    total_seconds, milliseconds = divmod(total_ms, 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}.{milliseconds:03}"


def formatted_size(size_bytes: int) -> str:
    """
    Converts a size in bytes to a human-readable string (B, KB, MB, GB, TB).

    Args:
        size_bytes: The size of the file in bytes.

    Returns:
        A formatted string, e.g. 1536 becomes "1.50 KB" and 2097152 becomes "2 MB".
    """
    if size_bytes <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    factor = 1024.0
    size = float(size_bytes)
    for unit in units:
        if size < factor:
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.2f} {unit}".replace(".00", "")
        size /= factor

    return f"{size:.2f} {units[-1]}".replace(".00", "")


# Characters that force a destination path to be quoted.
_NEEDS_QUOTING = re.compile(r"[\s\"']")


def needs_quoting(value: str) -> bool:
    """
    True when `value` contains whitespace, quotes or non-ASCII characters.

    On POSIX the rendered arguments are split with `shlex`, which drops bare
    backslashes, so a backslash also requires quoting there.
    """
    if os.name != "nt" and "\\" in value:
        return True
    return bool(_NEEDS_QUOTING.search(value)) or not value.isascii()


def quote_argument(value: Union[str, Path]) -> str:
    """
    Wraps a path or URI in double quotes for the rendered argument string.

    Embedded double quotes are escaped; on POSIX backslashes are escaped as
    well, so the string splits back into the original value with `shlex`.
    """
    text = str(value)
    if os.name != "nt":
        text = text.replace("\\", "\\\\")
    text = text.replace('"', '\\"')
    return f'"{text}"'


def escape_filter_path(path: Union[str, Path]) -> str:
    """
    Escapes a file path for use inside an ffmpeg filter graph.

    Backslashes become ``\\\\`` and colons become ``\\:``, e.g.
    ``C:\\subs\\a.srt`` becomes ``C\\:\\\\subs\\\\a.srt``.
    """
    return str(path).replace("\\", "\\\\").replace(":", "\\:")
