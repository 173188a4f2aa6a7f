"""
Configuration package for ffconductor.

Modules:
    common.py: Settings shared across the package: user YAML config, executable
               names, logger format and process timings.
    video.py: Video stream defaults and batch discovery settings.
    audio.py: Audio stream defaults.
"""
