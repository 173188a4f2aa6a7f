"""
This package contains the domain model of ffconductor.

Modules:
    exceptions.py: The exception taxonomy shared by every layer.
    codecs.py: String-backed catalogs of well-known ffmpeg names (codecs,
               formats, filters, presets) and small enumerations.
    streams.py: The `VideoStream`, `AudioStream` and `SubtitleStream` builders
                that stage ordered argument fragments.
    media.py: The `MediaInfo` model and the ffprobe-based probe/normalizer
              that creates it.
"""
