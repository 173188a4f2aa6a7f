"""
Configuration settings related to video streams and video conversions.

This module defines the defaults used by the video stream builder (speed
limits, watermark placement) and the batch pipeline (which files count as
video inputs and which folders are ignored).
"""
from .common import RUN_LOG_DIR_NAME

# --- Batch Discovery ---
VIDEO_EXTENSIONS = (
    ".wmv", ".ts", ".mp4", ".mov", ".mpg", ".mkv", ".avi",
    ".m2ts", ".3gp", ".flv", ".vob", ".webm", ".m4v", ".asf", ".mts", ".ogv",
)

# Keywords used to exclude folders (usually our own output) from discovery.
EXCEPT_FOLDERS_KEYWORDS = (RUN_LOG_DIR_NAME, "converted")

DEFAULT_OUTPUT_DIR_NAME = "converted"
DEFAULT_OUTPUT_FORMAT = "mp4"

# --- Speed Change ---
# setpts only gives sensible results for these multipliers; outside of them the
# audio track (atempo) can no longer follow in a single filter.
MIN_SPEED_MULTIPLIER = 0.5
MAX_SPEED_MULTIPLIER = 2.0

# --- Watermark ---
# Distance in pixels kept between a watermark and the frame edge.
WATERMARK_MARGIN = 5

# --- Subtitles ---
# Text subtitle codec used when subtitles are kept in mp4-compatible outputs.
DEFAULT_SUBTITLE_CODEC = "mov_text"
