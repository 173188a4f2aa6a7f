"""
Application services of ffconductor.

Modules:
    conversion.py: `Conversion`, the argument synthesizer and ffmpeg runner,
                   with `ConversionResult` and `ConversionProgress`.
    conversion_helpers.py: Prebuilt conversions (convert, transcode,
                           concatenate, snapshot, split, watermark, ...).
    logging_service.py: Text error log and YAML success log used by the
                        batch pipeline.
"""
