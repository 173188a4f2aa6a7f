"""
Helpers shared by the domain and service layers.

Modules:
    executables.py: Locates and verifies the ffmpeg/ffprobe executables.
    ffmpeg_utils.py: Structured command runner and progress parsing.
    format_utils.py: Time, size, quoting and filter-escaping helpers.
"""
