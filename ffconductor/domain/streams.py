"""
The stream model: one builder per elementary track of a media source.

A stream describes one track (video, audio or subtitle) of a source file as it
was reported by ffprobe, and collects what the caller wants done with that
track in the output. Mutators never touch the file or spawn anything; they
only stage named argument fragments ("codec", "seek", "split", ...). Each
fragment kind holds one value, so calling a mutator twice keeps the last value.

Rendering happens in `build()`, which always emits the staged fragments in a
fixed order per stream kind, no matter in which order the mutators were
called. The order matters because ffmpeg applies options and filters in the
sequence it reads them.

Seeks are special: for audio and subtitle streams the seek is rendered by
`build_input_arguments()` and placed in front of the stream's input, where
ffmpeg seeks in the input before decoding. A video seek is rendered in its
`build()` slot on the output side. `split()` always produces an output-side
trim (`-ss <start> -t <duration>`).
"""
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .codecs import (
    AudioCodec,
    BitstreamFilter,
    ConversionPreset,
    Position,
    RotateDegrees,
    SubtitleCodec,
    VideoCodec,
    VideoSize,
)
from .exceptions import ArgumentError
from ..config.audio import MAX_ATEMPO, MIN_ATEMPO
from ..config.video import MAX_SPEED_MULTIPLIER, MIN_SPEED_MULTIPLIER, WATERMARK_MARGIN
from ..utils.format_utils import escape_filter_path, quote_argument, to_ffmpeg_time

TimeValue = Union[timedelta, float, int]


def as_timedelta(value: TimeValue) -> timedelta:
    """Accepts a timedelta or a number of seconds."""
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=float(value))


def truncate_to_seconds(value: timedelta) -> timedelta:
    """Drops the sub-second part of a duration."""
    return timedelta(seconds=int(value.total_seconds()))


class Stream:
    """
    Base class for all stream kinds.

    Attributes:
        index: Position of the track inside its source container.
        codec: The codec name reported by ffprobe (e.g. "h264").
        source: The file path or URI the stream belongs to. The stream does not
                own the file; it only refers to it.
        precise_duration: Duration of the track with full precision.
    """

    kind: str = ""
    # Fragment kinds rendered by build(), in order. "filter" is the filter graph.
    BUILD_ORDER: Tuple[str, ...] = ()
    # Fragment kinds rendered in front of the stream's input.
    INPUT_ORDER: Tuple[str, ...] = ("seek",)

    def __init__(
        self,
        index: int = 0,
        codec: str = "",
        duration: TimeValue = timedelta(0),
        source: Union[str, Path] = "",
    ):
        self.index = index
        self.codec = codec
        self.source = str(source)
        self.precise_duration = as_timedelta(duration)
        self._fragments: Dict[str, str] = {}

    @property
    def duration(self) -> timedelta:
        """The duration truncated to whole seconds."""
        return truncate_to_seconds(self.precise_duration)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(index={self.index}, codec={self.codec!r}, "
            f"duration={self.precise_duration}, source={self.source!r})"
        )

    # --- Staging ---

    def _stage(self, fragment_kind: str, text: str):
        self._fragments[fragment_kind] = text
        return self

    def staged(self, fragment_kind: str) -> Optional[str]:
        """Returns the staged fragment of one kind, or None."""
        return self._fragments.get(fragment_kind)

    # --- Rendering ---

    def _render_filter_graph(self) -> str:
        return ""

    def _render(self, order: Tuple[str, ...]) -> str:
        parts = []
        for fragment_kind in order:
            if fragment_kind == "filter":
                text = self._render_filter_graph()
            else:
                text = self._fragments.get(fragment_kind, "")
            if text:
                parts.append(text)
        return " ".join(parts)

    def build(self) -> str:
        """Renders the output-side fragments in this stream kind's fixed order."""
        return self._render(self.BUILD_ORDER)

    def build_input_arguments(self) -> str:
        """Renders the fragments that belong in front of the stream's input."""
        return self._render(self.INPUT_ORDER)

    # --- Common Mutators ---

    def set_seek(self, seek: TimeValue):
        """
        Starts reading the stream at `seek`.

        Raises:
            ArgumentError: If the seek is negative.
        """
        seek_td = as_timedelta(seek)
        if seek_td < timedelta(0):
            raise ArgumentError(f"Seek must not be negative: {seek_td}")
        return self._stage("seek", f"-ss {to_ffmpeg_time(seek_td)}")

    def split(self, start: TimeValue, duration: TimeValue):
        """Keeps only `duration` of the stream starting at `start`."""
        start_td, duration_td = as_timedelta(start), as_timedelta(duration)
        if start_td < timedelta(0) or duration_td <= timedelta(0):
            raise ArgumentError(f"Invalid split range: start={start_td}, duration={duration_td}")
        return self._stage("split", f"-ss {to_ffmpeg_time(start_td)} -t {to_ffmpeg_time(duration_td)}")

    def _stage_codec(self, specifier: str, codec: str):
        return self._stage("codec", f"{specifier} {codec}")

    def to_dict(self) -> Dict[str, object]:
        """Returns the probed properties as plain values (used for YAML reports)."""
        return {
            "index": self.index,
            "kind": self.kind,
            "codec": self.codec,
            "duration": str(self.duration),
        }


class VideoStream(Stream):
    """
    A video track and the operations staged for it.

    Attributes:
        width: Frame width in pixels.
        height: Frame height in pixels.
        framerate: Frames per second, rounded to three decimals.
        ratio: Display aspect ratio reduced to lowest terms, e.g. "16:9".
        bitrate: Bitrate in bits per second.
    """

    kind = "video"
    BUILD_ORDER = (
        "scale", "codec", "preset", "bsf", "seek", "frames", "loop",
        "split", "reverse", "rotate", "size", "framerate", "filter",
    )
    INPUT_ORDER = ()

    def __init__(
        self,
        index: int = 0,
        codec: str = "",
        duration: TimeValue = timedelta(0),
        source: Union[str, Path] = "",
        width: int = 0,
        height: int = 0,
        framerate: float = 0.0,
        ratio: str = "0:0",
        bitrate: int = 0,
    ):
        super().__init__(index, codec, duration, source)
        self.width = width
        self.height = height
        self.framerate = framerate
        self.ratio = ratio
        self.bitrate = bitrate
        # Ordered chain of the simple filters of the filter graph.
        self._filters: Dict[str, str] = {}
        self._watermark: Optional[Tuple[str, str]] = None

    def to_dict(self) -> Dict[str, object]:
        data = super().to_dict()
        data.update(width=self.width, height=self.height, framerate=self.framerate, ratio=self.ratio, bitrate=self.bitrate)
        return data

    def set_codec(self, codec: Union[VideoCodec, str], bitrate: int = 0) -> "VideoStream":
        """Encodes the stream with `codec`; `bitrate` is in kilobits per second."""
        text = f"-codec:v {VideoCodec(codec)}"
        if bitrate > 0:
            text += f" -b:v {bitrate}k"
        return self._stage("codec", text)

    def copy_stream(self) -> "VideoStream":
        return self._stage_codec("-codec:v", "copy")

    def set_preset(self, preset: Union[ConversionPreset, str]) -> "VideoStream":
        return self._stage("preset", f"-preset {str(ConversionPreset(preset)).lower()}")

    def set_bitstream_filter(self, bitstream_filter: Union[BitstreamFilter, str]) -> "VideoStream":
        return self._stage("bsf", f"-bsf:v {BitstreamFilter(bitstream_filter)}")

    def set_seek(self, seek: TimeValue) -> "VideoStream":
        """
        Starts the output at `seek`.

        Raises:
            ArgumentError: If `seek` lies beyond the end of the stream.
        """
        seek_td = as_timedelta(seek)
        if seek_td > self.precise_duration:
            raise ArgumentError(
                f"Seek {seek_td} is beyond the end of the video stream ({self.precise_duration})."
            )
        return super().set_seek(seek_td)

    def set_output_frames_count(self, number: int) -> "VideoStream":
        """Stops after writing `number` frames."""
        if number <= 0:
            raise ArgumentError(f"Frame count must be positive: {number}")
        return self._stage("frames", f"-frames:v {number}")

    def set_loop(self, count: int, delay: int = 0) -> "VideoStream":
        """
        Sets the loop count of an animated output (e.g. gif).

        Args:
            count: Number of loops, 0 loops forever.
            delay: Delay after the last frame, in milliseconds.
        """
        text = f"-loop {count}"
        if delay > 0:
            text += f" -final_delay {delay // 100}"
        return self._stage("loop", text)

    def reverse(self) -> "VideoStream":
        """
        Plays the video backwards.

        Renders its own `-vf`. ffmpeg keeps only the last video filter option of
        a stream, so this does not combine with `set_scale`, `rotate` or the
        filter graph (subtitles, speed, watermark).
        """
        return self._stage("reverse", "-vf reverse")

    def rotate(self, degrees: RotateDegrees) -> "VideoStream":
        """
        Rotates the picture with the transpose filter.

        Renders its own `-vf`, see `reverse` for combining it with other filters.
        """
        degrees = RotateDegrees(degrees)
        if degrees == RotateDegrees.INVERT:
            return self._stage("rotate", '-vf "transpose=2,transpose=2"')
        return self._stage("rotate", f'-vf "transpose={int(degrees)}"')

    def set_scale(self, size: Union[VideoSize, str]) -> "VideoStream":
        """
        Scales the picture to `size` with the scale filter.

        Renders its own `-vf`, see `reverse` for combining it with other filters.
        Use `set_size` for an output size that combines with other filters.
        """
        size = VideoSize.parse(size)
        return self._stage("scale", f"-vf scale={size.width}:{size.height}")

    def set_size(self, size: Union[VideoSize, str]) -> "VideoStream":
        return self._stage("size", f"-s {VideoSize.parse(size)}")

    def set_framerate(self, framerate: float) -> "VideoStream":
        if framerate <= 0:
            raise ArgumentError(f"Framerate must be positive: {framerate}")
        return self._stage("framerate", f"-r {framerate:g}")

    def change_speed(self, multiplier: float) -> "VideoStream":
        """
        Plays the video `multiplier` times faster (0.5 to 2.0).

        Raises:
            ArgumentError: If the multiplier is out of range.
        """
        if not MIN_SPEED_MULTIPLIER <= multiplier <= MAX_SPEED_MULTIPLIER:
            raise ArgumentError(
                f"Speed multiplier must be between {MIN_SPEED_MULTIPLIER} and {MAX_SPEED_MULTIPLIER}: {multiplier}"
            )
        self._filters["setpts"] = f"setpts={1 / multiplier:g}*PTS"
        return self

    def add_subtitles(
        self,
        subtitle_path: Union[str, Path],
        encoding: Optional[str] = None,
        style: Optional[str] = None,
        original_size: Optional[Union[VideoSize, str]] = None,
    ) -> "VideoStream":
        """
        Burns a subtitle file into the picture.

        Args:
            subtitle_path: The subtitle file (srt, ass, ...).
            encoding: Character encoding of the subtitle file, e.g. "UTF-8".
            style: An ASS `force_style` override, e.g. "Fontsize=24".
            original_size: The frame size the subtitles were authored for.
        """
        text = f"subtitles='{escape_filter_path(subtitle_path)}'"
        if encoding:
            text += f":charenc={encoding}"
        if style:
            text += f":force_style='{style}'"
        if original_size:
            text += f":original_size={VideoSize.parse(original_size)}"
        self._filters["subtitles"] = text
        return self

    def set_watermark(self, image_path: Union[str, Path], position: Position) -> "VideoStream":
        """Overlays the image at `image_path` at `position`."""
        self._watermark = (escape_filter_path(image_path), _overlay_coordinates(Position(position)))
        return self

    def _render_filter_graph(self) -> str:
        # Subtitles are burned before the speed change so they follow the new timing.
        chain = ",".join(self._filters[name] for name in ("subtitles", "setpts") if name in self._filters)
        if self._watermark:
            image, coordinates = self._watermark
            graph = (
                f"movie='{image}'[watermark];"
                f"[in]{chain or 'null'}[base];"
                f"[base][watermark]overlay={coordinates}[out]"
            )
        else:
            graph = chain
        return f"-filter:v {quote_argument(graph)}" if graph else ""


def _overlay_coordinates(position: Position) -> str:
    m = WATERMARK_MARGIN
    right = f"main_w-overlay_w-{m}"
    bottom = f"main_h-overlay_h-{m}"
    center_x = "(main_w-overlay_w)/2"
    center_y = "(main_h-overlay_h)/2"
    return {
        Position.UPPER_LEFT: f"{m}:{m}",
        Position.UP: f"{center_x}:{m}",
        Position.UPPER_RIGHT: f"{right}:{m}",
        Position.LEFT: f"{m}:{center_y}",
        Position.CENTER: f"{center_x}:{center_y}",
        Position.RIGHT: f"{right}:{center_y}",
        Position.BOTTOM_LEFT: f"{m}:{bottom}",
        Position.BOTTOM: f"{center_x}:{bottom}",
        Position.BOTTOM_RIGHT: f"{right}:{bottom}",
    }[position]


class AudioStream(Stream):
    """
    An audio track and the operations staged for it.

    Attributes:
        channels: Number of channels.
        sample_rate: Sample rate in Hz.
        bitrate: Bitrate in bits per second.
    """

    kind = "audio"
    BUILD_ORDER = ("codec", "bsf", "sample_rate", "channels", "bitrate", "reverse", "split", "filter")

    def __init__(
        self,
        index: int = 0,
        codec: str = "",
        duration: TimeValue = timedelta(0),
        source: Union[str, Path] = "",
        channels: int = 0,
        sample_rate: int = 0,
        bitrate: int = 0,
    ):
        super().__init__(index, codec, duration, source)
        self.channels = channels
        self.sample_rate = sample_rate
        self.bitrate = bitrate
        self._tempo: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        data = super().to_dict()
        data.update(channels=self.channels, sample_rate=self.sample_rate, bitrate=self.bitrate)
        return data

    def set_codec(self, codec: Union[AudioCodec, str]) -> "AudioStream":
        return self._stage_codec("-c:a", AudioCodec(codec))

    def copy_stream(self) -> "AudioStream":
        return self._stage_codec("-c:a", "copy")

    def set_bitstream_filter(self, bitstream_filter: Union[BitstreamFilter, str]) -> "AudioStream":
        return self._stage("bsf", f"-bsf:a {BitstreamFilter(bitstream_filter)}")

    def set_sample_rate(self, sample_rate: int) -> "AudioStream":
        if sample_rate <= 0:
            raise ArgumentError(f"Sample rate must be positive: {sample_rate}")
        return self._stage("sample_rate", f"-ar:{self.index} {sample_rate}")

    def set_channels(self, channels: int) -> "AudioStream":
        if channels <= 0:
            raise ArgumentError(f"Channel count must be positive: {channels}")
        return self._stage("channels", f"-ac:{self.index} {channels}")

    def set_bitrate(self, bitrate: int) -> "AudioStream":
        """Sets the output bitrate in bits per second."""
        if bitrate <= 0:
            raise ArgumentError(f"Bitrate must be positive: {bitrate}")
        return self._stage("bitrate", f"-b:a:{self.index} {bitrate}")

    change_bitrate = set_bitrate

    def reverse(self) -> "AudioStream":
        return self._stage("reverse", "-af areverse")

    def change_speed(self, multiplier: float) -> "AudioStream":
        if not MIN_ATEMPO <= multiplier <= MAX_ATEMPO:
            raise ArgumentError(f"Speed multiplier must be between {MIN_ATEMPO} and {MAX_ATEMPO}: {multiplier}")
        self._tempo = multiplier
        return self

    def _render_filter_graph(self) -> str:
        if self._tempo is None:
            return ""
        return f'-filter:a "atempo={self._tempo:g}"'


class SubtitleStream(Stream):
    """
    A subtitle track.

    Attributes:
        language: The language tag reported by ffprobe, if any.
    """

    kind = "subtitle"
    BUILD_ORDER = ("codec", "bsf", "language", "split")

    def __init__(
        self,
        index: int = 0,
        codec: str = "",
        duration: TimeValue = timedelta(0),
        source: Union[str, Path] = "",
        language: Optional[str] = None,
    ):
        super().__init__(index, codec, duration, source)
        self.language = language

    def to_dict(self) -> Dict[str, object]:
        data = super().to_dict()
        data["language"] = self.language
        return data

    def set_bitstream_filter(self, bitstream_filter: Union[BitstreamFilter, str]) -> "SubtitleStream":
        return self._stage("bsf", f"-bsf:s {BitstreamFilter(bitstream_filter)}")

    def set_codec(self, codec: Union[SubtitleCodec, str]) -> "SubtitleStream":
        return self._stage_codec("-c:s", SubtitleCodec(codec))

    def copy_stream(self) -> "SubtitleStream":
        return self._stage_codec("-c:s", "copy")

    def set_language(self, language: str) -> "SubtitleStream":
        if not language or any(ch.isspace() for ch in language):
            raise ArgumentError(f"Invalid language tag: {language!r}")
        self.language = language
        return self._stage("language", f"-metadata:s:s:{self.index} language={language}")
