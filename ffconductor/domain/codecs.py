"""
Catalogs of well-known ffmpeg names.

ffmpeg accepts far more codecs, formats and filters than any list could hold,
so the catalogs here are open: every catalog is a validated `str` subclass with
a registry of common names exposed as class attributes (`VideoCodec.LIBX264`),
while any other name ffmpeg understands can still be used by constructing the
class directly (`VideoCodec("libsvtav1")`).

The small closed sets (rotation codes, watermark positions, parameter
positions) are plain enumerations.
"""
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict

from .exceptions import ArgumentError


class CatalogName(str):
    """
    A validated ffmpeg name.

    The value is stripped and must be non-empty and free of whitespace, since it
    is rendered verbatim into the argument string.
    """

    _known: Dict[str, "CatalogName"]

    def __new__(cls, value):
        text = str(value).strip()
        if not text or any(ch.isspace() for ch in text):
            raise ArgumentError(f"Invalid {cls.__name__} value: {value!r}")
        return super().__new__(cls, text)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str.__repr__(self)})"

    @classmethod
    def register(cls, **names: str) -> None:
        """Registers well-known names as class attributes, e.g. ``register(H264="h264")``."""
        if "_known" not in cls.__dict__:
            cls._known = {}
        for attr_name, value in names.items():
            instance = cls(value)
            setattr(cls, attr_name, instance)
            cls._known[attr_name] = instance

    @classmethod
    def known(cls) -> Dict[str, "CatalogName"]:
        """Returns the registered names of this catalog keyed by attribute name."""
        return dict(cls.__dict__.get("_known", {}))


class VideoCodec(CatalogName):
    """Video encoder names accepted by ``-codec:v``."""


class AudioCodec(CatalogName):
    """Audio encoder names accepted by ``-c:a``."""


class SubtitleCodec(CatalogName):
    """Subtitle encoder names accepted by ``-c:s``."""


class MediaFormat(CatalogName):
    """Container/muxer names accepted by ``-f``."""


class BitstreamFilter(CatalogName):
    """Bitstream filter names accepted by ``-bsf``."""


class ConversionPreset(CatalogName):
    """x264/x265 style speed presets accepted by ``-preset``."""


VideoCodec.register(
    H264="h264",
    LIBX264="libx264",
    HEVC="hevc",
    LIBX265="libx265",
    MPEG4="mpeg4",
    LIBVPX="libvpx",
    LIBVPX_VP9="libvpx-vp9",
    LIBTHEORA="libtheora",
    LIBSVTAV1="libsvtav1",
    MPEG2VIDEO="mpeg2video",
    GIF="gif",
    PNG="png",
    MJPEG="mjpeg",
)
AudioCodec.register(
    AAC="aac",
    AC3="ac3",
    MP3="mp3",
    MP2="mp2",
    LIBMP3LAME="libmp3lame",
    LIBVORBIS="libvorbis",
    LIBOPUS="libopus",
    FLAC="flac",
    PCM_S16LE="pcm_s16le",
)
SubtitleCodec.register(
    MOV_TEXT="mov_text",
    SRT="srt",
    SUBRIP="subrip",
    ASS="ass",
    SSA="ssa",
    WEBVTT="webvtt",
    DVB_SUBTITLE="dvbsub",
)
MediaFormat.register(
    MP4="mp4",
    MATROSKA="matroska",
    WEBM="webm",
    OGG="ogg",
    MPEGTS="mpegts",
    GIF="gif",
    HLS="hls",
    MP3="mp3",
    IMAGE2="image2",
)
BitstreamFilter.register(
    H264_MP4TOANNEXB="h264_mp4toannexb",
    HEVC_MP4TOANNEXB="hevc_mp4toannexb",
    AAC_ADTSTOASC="aac_adtstoasc",
)
ConversionPreset.register(
    ULTRA_FAST="ultrafast",
    SUPER_FAST="superfast",
    VERY_FAST="veryfast",
    FASTER="faster",
    FAST="fast",
    MEDIUM="medium",
    SLOW="slow",
    SLOWER="slower",
    VERY_SLOW="veryslow",
)


@dataclass(frozen=True)
class VideoSize:
    """A frame size rendered as ``WIDTHxHEIGHT``."""

    width: int
    height: int

    def __post_init__(self):
        if self.width == 0 or self.height == 0:
            raise ArgumentError(f"Invalid video size {self.width}x{self.height}")

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def parse(cls, value: "VideoSize | str") -> "VideoSize":
        """Accepts an existing size or a ``"1280x720"`` string."""
        if isinstance(value, VideoSize):
            return value
        try:
            width_str, height_str = str(value).lower().split("x")
            return cls(int(width_str), int(height_str))
        except ValueError:
            raise ArgumentError(f"Invalid video size: {value!r}") from None


VideoSize.SQCIF = VideoSize(128, 96)
VideoSize.QVGA = VideoSize(320, 240)
VideoSize.CIF = VideoSize(352, 288)
VideoSize.VGA = VideoSize(640, 480)
VideoSize.HD480 = VideoSize(852, 480)
VideoSize.HD720 = VideoSize(1280, 720)
VideoSize.HD1080 = VideoSize(1920, 1080)
VideoSize.UHD2160 = VideoSize(3840, 2160)


class RotateDegrees(IntEnum):
    """
    Rotation codes understood by the ``transpose`` filter.

    INVERT is not a transpose code of its own; it is rendered as two
    counter-clockwise transposes.
    """

    CLOCKWISE = 1
    COUNTER_CLOCKWISE = 2
    INVERT = 3


class Position(Enum):
    """Placement of a watermark inside the frame."""

    UPPER_LEFT = "upper_left"
    UP = "up"
    UPPER_RIGHT = "upper_right"
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM = "bottom"
    BOTTOM_RIGHT = "bottom_right"


class ParameterPosition(Enum):
    """Where a free-form conversion parameter is rendered."""

    PRE_INPUT = "pre_input"
    POST_INPUT = "post_input"
    OUTPUT = "output"
