"""
Configuration settings related to audio streams.
"""

# --- Silent Audio Bed ---
# Parameters of the `anullsrc` source used when a concatenated input has no
# audio track of its own.
SILENT_AUDIO_SAMPLE_RATE = 48_000
SILENT_AUDIO_CHANNEL_LAYOUT = "stereo"

# Bounds accepted by a single `atempo` filter.
MIN_ATEMPO = 0.5
MAX_ATEMPO = 2.0
