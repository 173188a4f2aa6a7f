"""
ffconductor: orchestration of the ffmpeg and ffprobe command-line tools.

Probe a file into a `MediaInfo`, adjust its streams, assemble a `Conversion`
and run it directly or through a `ConversionQueue`::

    from ffconductor import Conversion, get_media_info

    info = get_media_info("input.mkv")
    conversion = (
        Conversion.new()
        .add_stream(info.video_streams[0].set_codec("libx264"), *info.audio_streams)
        .set_output("output.mp4")
    )
    result = conversion.start(on_progress=lambda p: print(p.percent))

The library logs through loguru but never installs sinks of its own.
"""
from .domain.codecs import (
    AudioCodec,
    BitstreamFilter,
    ConversionPreset,
    MediaFormat,
    ParameterPosition,
    Position,
    RotateDegrees,
    SubtitleCodec,
    VideoCodec,
    VideoSize,
)
from .domain.exceptions import (
    ArgumentError,
    CancellationError,
    ConversionError,
    ExecutableNotFoundError,
    FFConductorError,
    InvalidMediaError,
)
from .domain.media import MediaInfo, get_media_info
from .domain.streams import AudioStream, Stream, SubtitleStream, VideoStream
from .pipeline.conversion_queue import ConversionQueue
from .services.conversion import Conversion, ConversionProgress, ConversionResult, ConversionState
from .utils.executables import Executables

__version__ = "0.1.0"
