"""
Media probing and normalization.

`get_media_info` runs ffprobe against a file or stream URI and turns the JSON it
prints into a `MediaInfo`: an immutable description of the source with one
`VideoStream`, `AudioStream` or `SubtitleStream` per track, in the order ffprobe
listed them. The order matters later on, because stream indexes are used for
`-map` when the streams are handed to a conversion.

ffprobe reports values inconsistently between containers (durations on the
stream or only on the container, bitrates missing for some codecs, framerates
as fractions), so the normalization rules live in small pure functions that can
be tested without ffprobe:

- framerate: "n/d" becomes round(n / d, 3)
- aspect ratio: width:height reduced by their greatest common divisor
- duration and bitrate: the stream value, or the container value when the
  stream reports nothing meaningful
"""
import json
import math
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from .exceptions import InvalidMediaError
from .streams import AudioStream, Stream, SubtitleStream, VideoStream, truncate_to_seconds
from ..config.common import BITRATE_EPSILON, DURATION_EPSILON
from ..utils.executables import Executables
from ..utils.ffmpeg_utils import run_cmd


# --- Normalization Helpers ---

def aspect_ratio(width: int, height: int) -> str:
    """
    Reduces a frame size to its aspect ratio, e.g. (1280, 720) -> "16:9".

    Returns "0:0" when the ratio cannot be determined (a zero dimension pair).
    """
    divisor = math.gcd(int(width), int(height))
    if divisor <= 0:
        return "0:0"
    return f"{int(width) // divisor}:{int(height) // divisor}"


def parse_framerate(rate: Optional[str]) -> float:
    """
    Converts an ffprobe rational ("30000/1001") to frames per second.

    Returns:
        The framerate rounded to three decimals, or 0.0 for missing, malformed
        or zero-denominator values ("0/0" is common for still images).
    """
    if not rate:
        return 0.0
    numerator, _, denominator = str(rate).partition("/")
    try:
        num = float(numerator)
        den = float(denominator) if denominator else 1.0
    except ValueError:
        logger.warning(f"Could not parse framerate: {rate}")
        return 0.0
    if den == 0:
        return 0.0
    return round(num / den, 3)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    return int(_to_float(value))


def resolve_duration(stream_model: Dict[str, Any], format_model: Dict[str, Any]) -> timedelta:
    """Stream duration if it is meaningful, otherwise the container duration."""
    seconds = _to_float(stream_model.get("duration"))
    if seconds <= DURATION_EPSILON:
        seconds = _to_float(format_model.get("duration"))
    return timedelta(seconds=max(seconds, 0.0))


def resolve_bitrate(stream_model: Dict[str, Any], format_model: Dict[str, Any]) -> int:
    """Stream bitrate if it is meaningful, otherwise the container bitrate."""
    bitrate = _to_float(stream_model.get("bit_rate"))
    if abs(bitrate) <= BITRATE_EPSILON:
        bitrate = _to_float(format_model.get("bit_rate"))
    return int(bitrate)


# --- Media Model ---

@dataclass(frozen=True)
class MediaInfo:
    """
    An immutable description of a probed media source.

    Attributes:
        path: The file path or URI that was probed.
        size: Size in bytes as reported by the container (0 if unknown).
        duration: The longest video/audio stream duration, truncated to whole
                  seconds.
        streams: All recognized streams, in probe order.
    """

    path: str
    size: int
    duration: timedelta
    streams: Tuple[Stream, ...] = field(default_factory=tuple)

    @property
    def video_streams(self) -> List[VideoStream]:
        return [s for s in self.streams if isinstance(s, VideoStream)]

    @property
    def audio_streams(self) -> List[AudioStream]:
        return [s for s in self.streams if isinstance(s, AudioStream)]

    @property
    def subtitle_streams(self) -> List[SubtitleStream]:
        return [s for s in self.streams if isinstance(s, SubtitleStream)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "duration": str(self.duration),
            "streams": [s.to_dict() for s in self.streams],
        }


def normalize_probe(
    source: Union[str, Path],
    stream_models: List[Dict[str, Any]],
    format_model: Optional[Dict[str, Any]] = None,
) -> MediaInfo:
    """
    Builds a `MediaInfo` from already-parsed ffprobe output.

    Args:
        source: The probed path or URI; every stream refers back to it.
        stream_models: The "streams" list of `ffprobe -show_streams`.
        format_model: The "format" object of `ffprobe -show_format`.

    Returns:
        The normalized media description.

    Raises:
        InvalidMediaError: If `stream_models` is empty.
    """
    source = str(source)
    format_model = format_model or {}
    if not stream_models:
        raise InvalidMediaError(f"Invalid file. Cannot load file {source}")

    streams: List[Stream] = []
    for model in stream_models:
        codec_type = model.get("codec_type")
        index = _to_int(model.get("index"))
        codec = model.get("codec_name") or ""
        duration = resolve_duration(model, format_model)

        if codec_type == "video":
            width, height = _to_int(model.get("width")), _to_int(model.get("height"))
            streams.append(
                VideoStream(
                    index=index,
                    codec=codec,
                    duration=duration,
                    source=source,
                    width=width,
                    height=height,
                    framerate=parse_framerate(model.get("r_frame_rate")),
                    ratio=aspect_ratio(width, height),
                    bitrate=resolve_bitrate(model, format_model),
                )
            )
        elif codec_type == "audio":
            streams.append(
                AudioStream(
                    index=index,
                    codec=codec,
                    duration=duration,
                    source=source,
                    channels=_to_int(model.get("channels")),
                    sample_rate=_to_int(model.get("sample_rate")),
                    bitrate=resolve_bitrate(model, format_model),
                )
            )
        elif codec_type == "subtitle":
            tags = model.get("tags") or {}
            streams.append(
                SubtitleStream(
                    index=index,
                    codec=codec,
                    duration=duration,
                    source=source,
                    language=tags.get("language"),
                )
            )
        else:
            logger.debug(f"Ignoring stream #{index} of type '{codec_type}' in {source}")

    timed = [s.precise_duration for s in streams if isinstance(s, (VideoStream, AudioStream))]
    duration = truncate_to_seconds(max(timed, default=timedelta(0)))

    return MediaInfo(
        path=source,
        size=_to_int(format_model.get("size")),
        duration=duration,
        streams=tuple(streams),
    )


# --- Probe ---

def _probe_json(section: str, source: str) -> Dict[str, Any]:
    """Runs ffprobe for one section ("-show_streams" or "-show_format")."""
    cmd = [Executables.ffprobe_path(), "-v", "quiet", "-print_format", "json", section, source]
    result = run_cmd(cmd)
    if result.returncode != 0:
        logger.debug(f"ffprobe {section} exited with {result.returncode} for {source}")
    if not result.stdout or not result.stdout.strip():
        return {}
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise InvalidMediaError(f"ffprobe returned malformed JSON for {source}: {e}") from e


def get_media_info(path: Union[str, Path]) -> MediaInfo:
    """
    Probes a media file or stream URI with ffprobe.

    Two ffprobe processes are run: one listing the streams and one listing the
    container format. Nothing is retried.

    Args:
        path: A local path or a URI understood by ffprobe. Surrounding quote
              characters are removed.

    Returns:
        The normalized `MediaInfo`.

    Raises:
        InvalidMediaError: If ffprobe reports no streams for the source.
        ExecutableNotFoundError: If ffprobe cannot be started.
    """
    source = str(path).strip().strip('"')
    logger.debug(f"Probing: {source}")

    stream_listing = _probe_json("-show_streams", source)
    stream_models = stream_listing.get("streams") or []
    if not stream_models:
        raise InvalidMediaError(f"Invalid file. Cannot load file {source}")

    format_model = _probe_json("-show_format", source).get("format") or {}
    media_info = normalize_probe(source, stream_models, format_model)
    logger.debug(
        f"Probed {source}: duration={media_info.duration}, "
        f"{len(media_info.video_streams)} video / {len(media_info.audio_streams)} audio / "
        f"{len(media_info.subtitle_streams)} subtitle stream(s)"
    )
    return media_info
