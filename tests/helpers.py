import json
import os
import subprocess
from datetime import timedelta

import pytest

from ffconductor.domain.streams import AudioStream, SubtitleStream, VideoStream

FAKE_FFMPEG = """#!{python}
import json
import os
import sys
import time

argv_file = os.environ.get("FAKE_FFMPEG_ARGV")
if argv_file:
    with open(argv_file, "w", encoding="utf-8") as f:
        json.dump(sys.argv[1:], f)

mode = os.environ.get("FAKE_FFMPEG_MODE", "success")
err = sys.stderr
err.write("ffmpeg version fake-build\\n")
if mode == "fail":
    err.write("Invalid data found when processing input\\n")
    err.flush()
    sys.exit(1)

for t in ("00:00:02.50", "00:00:05.00"):
    err.write("frame=   10 fps=0.0 q=-1.0 size=     256kB time=%s bitrate= 1.0kbits/s speed=1x\\r" % t)
    err.flush()
if mode == "hang":
    time.sleep(60)
err.write("frame=   20 fps=0.0 q=-1.0 Lsize=     512kB time=00:00:10.00 bitrate= 1.0kbits/s speed=1x\\n")
err.flush()
sys.exit(0)
"""

skip_on_windows = pytest.mark.skipif(os.name == "nt", reason="uses a POSIX shebang script as ffmpeg")


def read_argv(argv_file):
    return json.loads(argv_file.read_text(encoding="utf-8"))


def completed(cmd, stdout="", returncode=0):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")


def make_video(source="/media/input.mp4", index=0, duration=10, **kwargs):
    defaults = dict(codec="h264", width=1280, height=720, framerate=25.0, ratio="16:9", bitrate=2_000_000)
    defaults.update(kwargs)
    return VideoStream(index=index, duration=timedelta(seconds=duration), source=source, **defaults)


def make_audio(source="/media/input.mp4", index=1, duration=10, **kwargs):
    defaults = dict(codec="aac", channels=2, sample_rate=48_000, bitrate=128_000)
    defaults.update(kwargs)
    return AudioStream(index=index, duration=timedelta(seconds=duration), source=source, **defaults)


def make_subtitle(source="/media/input.mp4", index=2, language="eng"):
    return SubtitleStream(index=index, codec="subrip", duration=timedelta(seconds=10), source=source, language=language)


def probe_payload(
    video=True,
    audio=True,
    subtitle=False,
    width=1280,
    height=720,
    duration="13.000000",
    r_frame_rate="25/1",
    extra_videos=(),
):
    """
    A synthetic `ffprobe -show_streams` stream list.

    `audio` may be a number of audio tracks. `extra_videos` holds `(width, height)`
    pairs of further video streams following the first one.
    """
    streams = []
    sizes = ([(width, height)] if video else []) + list(extra_videos)
    for stream_width, stream_height in sizes:
        streams.append(
            {
                "index": len(streams),
                "codec_name": "h264",
                "codec_type": "video",
                "width": stream_width,
                "height": stream_height,
                "r_frame_rate": r_frame_rate,
                "duration": duration,
                "bit_rate": "2000000",
            }
        )
    for _ in range(int(audio)):
        streams.append(
            {
                "index": len(streams),
                "codec_name": "aac",
                "codec_type": "audio",
                "channels": 2,
                "sample_rate": "48000",
                "duration": duration,
                "bit_rate": "128000",
            }
        )
    if subtitle:
        streams.append(
            {
                "index": len(streams),
                "codec_name": "subrip",
                "codec_type": "subtitle",
                "tags": {"language": "eng"},
            }
        )
    return streams


def format_payload(duration="13.000000", size="1048576", bit_rate="2128000"):
    """A synthetic `ffprobe -show_format` format object."""
    return {"filename": "input.mp4", "duration": duration, "size": size, "bit_rate": bit_rate}
