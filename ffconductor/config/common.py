"""
Common configuration settings used throughout ffconductor.

This module contains globally shared configuration settings and constants: the
location of the FFmpeg executables, the logger format, process handling timings
and the names of the files written by the batch pipeline. It also handles the
loading of user-specific configuration from an external YAML file, so the
executables can be located without modifying the source code.
"""
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

# --- User Configuration ---
# Optional settings are read from 'config.user.yaml' at the project root, e.g.:
#
#   paths:
#     ffmpeg_dir: /opt/ffmpeg/bin

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"


def _load_ffmpeg_dir(config_path: Path) -> Optional[Path]:
    """Returns `paths.ffmpeg_dir` from the user config, or None when it is not set."""
    if not config_path.is_file():
        logger.debug(f"No user config at '{config_path}'; ffmpeg and ffprobe are looked up on PATH.")
        return None
    try:
        settings = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable user config '{config_path}': {e}")
        return None
    ffmpeg_dir = (settings.get("paths") or {}).get("ffmpeg_dir") if isinstance(settings, dict) else None
    return Path(ffmpeg_dir) if ffmpeg_dir else None


# The directory containing the ffmpeg and ffprobe executables, or None to use
# the system PATH.
FFMPEG_DIR: Optional[Path] = _load_ffmpeg_dir(USER_CONFIG_PATH)


# --- Logging Configuration ---

# The format string for the Loguru logger. The library itself never adds sinks;
# the entry point installs this format on stderr.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{thread.name} - <level>{message}</level>"
)

# The length of the random string appended to dated success log files, so two
# runs writing into the same directory never share a file.
SUCCESS_LOG_RANDOM_LENGTH = 10


# --- Executables ---

FFMPEG_EXECUTABLE = "ffmpeg"
FFPROBE_EXECUTABLE = "ffprobe"


# --- Probe Normalization ---

# Stream-level durations (seconds) at or below this value are treated as
# "not reported" and replaced by the container-level duration.
DURATION_EPSILON = 0.01

# The same threshold for stream-level bitrates (bits per second).
BITRATE_EPSILON = 0.01


# --- Process Handling ---

# Seconds to wait for ffmpeg to exit after a terminate request before it is
# killed outright.
PROCESS_TERMINATE_TIMEOUT = 5.0

# Size of the chunks read from the ffmpeg output pipe. ffmpeg terminates its
# progress lines with carriage returns, so the output is read in chunks rather
# than line by line.
OUTPUT_READ_CHUNK_SIZE = 4096


# --- Run Log Files ---
# Files written by the batch pipeline next to its output.

# The directory (below the output directory) that receives the run logs.
RUN_LOG_DIR_NAME = "ffconductor_logs"

# The text file that logs the exact ffmpeg command executed for every conversion.
COMMAND_TEXT = "cmd.txt"

# The default filename for the success log when a dated name is not requested.
DEFAULT_SUCCESS_LOG_YAML = "success_log.yaml"
