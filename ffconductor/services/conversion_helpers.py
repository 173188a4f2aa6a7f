"""
Ready-made conversions for common tasks.

Every helper probes its input(s), configures the probed streams and returns an
unstarted `Conversion`, so the caller can adjust it further, start it directly
or hand it to a `ConversionQueue`.
"""
from datetime import timedelta
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from loguru import logger

from .conversion import Conversion
from ..config.audio import SILENT_AUDIO_CHANNEL_LAYOUT, SILENT_AUDIO_SAMPLE_RATE
from ..config.video import DEFAULT_SUBTITLE_CODEC
from ..domain.codecs import (
    AudioCodec,
    MediaFormat,
    ParameterPosition,
    Position,
    SubtitleCodec,
    VideoCodec,
    VideoSize,
)
from ..domain.exceptions import ArgumentError
from ..domain.media import MediaInfo, get_media_info
from ..domain.streams import AudioStream, SubtitleStream, TimeValue, VideoStream
from ..utils.format_utils import quote_argument

PathLike = Union[str, Path]


def _first_video(info: MediaInfo) -> VideoStream:
    if not info.video_streams:
        raise ArgumentError(f"'{info.path}' has no video stream.")
    return info.video_streams[0]


def _widest_video(info: MediaInfo) -> VideoStream:
    if not info.video_streams:
        raise ArgumentError(f"'{info.path}' has no video stream.")
    return max(info.video_streams, key=lambda v: v.width)


def _first_audio(info: MediaInfo) -> AudioStream:
    if not info.audio_streams:
        raise ArgumentError(f"'{info.path}' has no audio stream.")
    return info.audio_streams[0]


# --- Format Conversion ---

def transcode(
    input_path: PathLike,
    output_path: PathLike,
    video_codec: Optional[Union[VideoCodec, str]] = None,
    audio_codec: Optional[Union[AudioCodec, str]] = None,
    subtitle_codec: Optional[Union[SubtitleCodec, str]] = None,
    keep_subtitles: bool = False,
) -> Conversion:
    """
    Re-encodes every stream of `input_path` into `output_path`.

    Streams keep their detected codec unless a codec is given for their kind.
    Video streams get their detected framerate forced on the output, because
    ffmpeg otherwise picks a wrong rate for some sources above 100 fps.

    Args:
        input_path: The source file.
        output_path: The destination file; the container follows its extension.
        video_codec: Codec for all video streams, or None to keep the detected one.
        audio_codec: Codec for all audio streams, or None to keep the detected one.
        subtitle_codec: Codec for kept subtitles (default: mov_text).
        keep_subtitles: Whether subtitle streams are carried over.

    Returns:
        The configured, unstarted conversion.
    """
    info = get_media_info(input_path)
    conversion = Conversion.new().set_output(output_path)

    for stream in info.streams:
        if isinstance(stream, VideoStream):
            codec = video_codec or stream.codec
            if codec:
                stream.set_codec(codec)
            if stream.framerate > 0:
                stream.set_framerate(stream.framerate)
            conversion.add_stream(stream)
        elif isinstance(stream, AudioStream):
            codec = audio_codec or stream.codec
            if codec:
                stream.set_codec(codec)
            conversion.add_stream(stream)
        elif isinstance(stream, SubtitleStream) and keep_subtitles:
            stream.set_codec(subtitle_codec or DEFAULT_SUBTITLE_CODEC)
            conversion.add_stream(stream)

    logger.debug(f"Transcode prepared: {input_path} -> {output_path} ({len(conversion.streams)} stream(s))")
    return conversion


def convert(input_path: PathLike, output_path: PathLike, keep_subtitles: bool = False) -> Conversion:
    """Converts `input_path` into the container implied by `output_path`'s extension."""
    return transcode(input_path, output_path, keep_subtitles=keep_subtitles)


def to_format(
    input_path: PathLike,
    output_path: PathLike,
    video_codec: Union[VideoCodec, str],
    audio_codec: Union[AudioCodec, str],
) -> Conversion:
    info = get_media_info(input_path)
    conversion = Conversion.new().set_output(output_path)
    for video in info.video_streams:
        conversion.add_stream(video.set_codec(video_codec))
    for audio in info.audio_streams:
        conversion.add_stream(audio.set_codec(audio_codec))
    return conversion


def to_mp4(input_path: PathLike, output_path: PathLike) -> Conversion:
    return to_format(input_path, output_path, VideoCodec.H264, AudioCodec.AAC)


def to_webm(input_path: PathLike, output_path: PathLike) -> Conversion:
    return to_format(input_path, output_path, VideoCodec.LIBVPX, AudioCodec.LIBVORBIS)


def to_ogv(input_path: PathLike, output_path: PathLike) -> Conversion:
    return to_format(input_path, output_path, VideoCodec.LIBTHEORA, AudioCodec.LIBVORBIS)


def to_ts(input_path: PathLike, output_path: PathLike) -> Conversion:
    return to_format(input_path, output_path, VideoCodec.MPEG2VIDEO, AudioCodec.MP2)


def to_gif(input_path: PathLike, output_path: PathLike, loop: int, delay: int = 0) -> Conversion:
    """Converts the first video stream into an animated gif looping `loop` times."""
    video = _first_video(get_media_info(input_path)).set_loop(loop, delay)
    return Conversion.new().add_stream(video).set_output_format(MediaFormat.GIF).set_output(output_path)


# --- Stream Extraction ---

def extract_audio(input_path: PathLike, output_path: PathLike) -> Conversion:
    audio = _first_audio(get_media_info(input_path))
    return Conversion.new().add_stream(audio).set_output(output_path)


def extract_video(input_path: PathLike, output_path: PathLike) -> Conversion:
    video = _first_video(get_media_info(input_path))
    return Conversion.new().add_stream(video).set_output(output_path)


def snapshot(input_path: PathLike, output_path: PathLike, capture_time: TimeValue) -> Conversion:
    """
    Saves the frame at `capture_time` as an image.

    Raises:
        ArgumentError: If `capture_time` is beyond the end of the video.
    """
    video = _first_video(get_media_info(input_path))
    video.set_output_frames_count(1).set_seek(capture_time)
    return Conversion.new().add_stream(video).set_output(output_path)


# --- Editing ---

def change_size(input_path: PathLike, output_path: PathLike, size: Union[VideoSize, str]) -> Conversion:
    info = get_media_info(input_path)
    conversion = Conversion.new().add_stream(_first_video(info).set_size(size))
    conversion.add_stream(*info.audio_streams, *info.subtitle_streams)
    return conversion.set_output(output_path)


def split(input_path: PathLike, output_path: PathLike, start: TimeValue, duration: TimeValue) -> Conversion:
    """Cuts `duration` starting at `start` out of every video and audio stream."""
    info = get_media_info(input_path)
    conversion = Conversion.new()
    for video in info.video_streams:
        conversion.add_stream(video.split(start, duration))
    for audio in info.audio_streams:
        conversion.add_stream(audio.split(start, duration))
    return conversion.set_output(output_path)


def set_watermark(
    input_path: PathLike,
    output_path: PathLike,
    image_path: PathLike,
    position: Position,
) -> Conversion:
    info = get_media_info(input_path)
    conversion = Conversion.new().add_stream(_first_video(info).set_watermark(image_path, position))
    conversion.add_stream(*info.audio_streams)
    return conversion.set_output(output_path)


def burn_subtitles(
    input_path: PathLike,
    subtitle_path: PathLike,
    output_path: PathLike,
    encoding: Optional[str] = None,
    style: Optional[str] = None,
) -> Conversion:
    """Renders the subtitles of `subtitle_path` into the picture."""
    info = get_media_info(input_path)
    video = _first_video(info).add_subtitles(subtitle_path, encoding=encoding, style=style)
    conversion = Conversion.new().add_stream(video)
    conversion.add_stream(*info.audio_streams)
    return conversion.set_output(output_path)


def add_subtitle(
    input_path: PathLike,
    subtitle_path: PathLike,
    output_path: PathLike,
    language: Optional[str] = None,
    subtitle_codec: Optional[Union[SubtitleCodec, str]] = None,
) -> Conversion:
    """Muxes a subtitle file into the output as a separate subtitle track."""
    info = get_media_info(input_path)
    subtitle_info = get_media_info(subtitle_path)
    if not subtitle_info.subtitle_streams:
        raise ArgumentError(f"'{subtitle_path}' has no subtitle stream.")

    subtitle = subtitle_info.subtitle_streams[0].set_codec(subtitle_codec or DEFAULT_SUBTITLE_CODEC)
    if language:
        subtitle.set_language(language)

    conversion = Conversion.new()
    for stream in info.video_streams + info.audio_streams:
        conversion.add_stream(stream.copy_stream())
    return conversion.add_stream(subtitle).set_output(output_path)


def add_audio(video_input: PathLike, audio_input: PathLike, output_path: PathLike) -> Conversion:
    """Combines the first video stream of one file with the first audio stream of another."""
    video = _first_video(get_media_info(video_input))
    audio = _first_audio(get_media_info(audio_input))
    return Conversion.new().add_stream(video, audio).set_output(output_path)


# --- Streams ---

def save_m3u8_stream(uri: str, output_path: PathLike, duration: Optional[TimeValue] = None) -> Conversion:
    """
    Records a network stream (HLS playlist, rtsp, ...) into a file.

    Args:
        uri: The stream URI. It must have a scheme and a host.
        output_path: The destination file.
        duration: How much of the stream to record, or None for all of it.

    Raises:
        ArgumentError: If `uri` is not an absolute URI.
    """
    parsed = urlparse(str(uri))
    if not parsed.scheme or not parsed.netloc:
        raise ArgumentError(f"Invalid stream URI: {uri!r}")

    info = get_media_info(uri)
    conversion = Conversion.new()
    conversion.add_stream(*info.streams)
    if duration is not None:
        conversion.set_input_time(duration)
    return conversion.set_output(output_path)


# --- Concatenation ---

def concatenate(output_path: PathLike, *input_paths: PathLike) -> Conversion:
    """
    Joins several files one after another into `output_path`.

    Every input's widest video stream is scaled to the widest input's
    resolution and aspect ratio and its timestamps are reset before the concat
    filter. Inputs without audio get a silent audio track of their own length,
    so every segment has one video and one audio part.

    Args:
        output_path: The destination file.
        *input_paths: Two or more source files, in playback order.

    Returns:
        The configured, unstarted conversion.

    Raises:
        ArgumentError: If fewer than two inputs are given, or an input has no video.
    """
    if len(input_paths) <= 1:
        raise ArgumentError("Concatenation requires at least two inputs.")

    infos = [get_media_info(path) for path in input_paths]
    videos = [_widest_video(info) for info in infos]
    target = max(videos, key=lambda v: v.width)
    target_dar = target.ratio.replace(":", "/")
    logger.debug(f"Concatenating {len(infos)} inputs at {target.width}x{target.height} ({target.ratio})")

    conversion = Conversion.new()
    chains = []
    segments = []
    for number, info in enumerate(infos):
        conversion.add_parameter(f"-i {quote_argument(info.path)}", ParameterPosition.PRE_INPUT)
        scale = f"scale={target.width}:{target.height}"
        if target.ratio != "0:0":
            scale += f",setdar=dar={target_dar}"
        chains.append(f"[{number}:{videos[number].index}]{scale},setpts=PTS-STARTPTS[v{number}];")
        if info.audio_streams:
            segments.append(f"[v{number}][{number}:a:0]")
        else:
            seconds = videos[number].precise_duration.total_seconds() or info.duration.total_seconds()
            chains.append(
                f"anullsrc=r={SILENT_AUDIO_SAMPLE_RATE}:cl={SILENT_AUDIO_CHANNEL_LAYOUT},"
                f"atrim=duration={seconds:.3f}[a{number}];"
            )
            segments.append(f"[v{number}][a{number}]")

    graph = "".join(chains) + "".join(segments) + f"concat=n={len(infos)}:v=1:a=1[v][a]"
    conversion.add_parameter(f'-filter_complex "{graph}"')
    conversion.add_parameter('-map "[v]" -map "[a]"')
    conversion.add_parameter(f"-aspect {target.ratio}")
    conversion.set_expected_duration(sum((info.duration for info in infos), timedelta(0)))
    return conversion.set_output(output_path)
