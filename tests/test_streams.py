from datetime import timedelta

import os

import pytest

from ffconductor.domain.codecs import (
    AudioCodec,
    ConversionPreset,
    Position,
    RotateDegrees,
    VideoCodec,
    VideoSize,
)
from ffconductor.domain.exceptions import ArgumentError
from ffconductor.utils.ffmpeg_utils import split_arguments
from tests.helpers import make_audio, make_subtitle, make_video

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX argument splitting")


# --- Catalogs ---

def test_catalog_constants_and_custom_values():
    assert VideoCodec.LIBX264 == "libx264"
    assert AudioCodec.AAC == "aac"
    assert VideoCodec("libsvtav1") == "libsvtav1"
    assert "LIBX264" in VideoCodec.known()
    assert "LIBX264" not in AudioCodec.known()


@pytest.mark.parametrize("value", ["", "   ", "lib x264"])
def test_catalog_rejects_invalid_names(value):
    with pytest.raises(ArgumentError):
        VideoCodec(value)


def test_video_size_parse():
    assert VideoSize.parse("1280x720") == VideoSize.HD720
    assert str(VideoSize(640, 360)) == "640x360"
    with pytest.raises(ArgumentError):
        VideoSize.parse("wide")


# --- Video ---

def test_video_build_order_is_fixed():
    video = make_video(duration=60)
    # Deliberately staged in reverse order of rendering.
    (
        video.add_subtitles("/subs/a.srt")
        .set_framerate(30)
        .set_size("640x360")
        .rotate(RotateDegrees.CLOCKWISE)
        .reverse()
        .split(1, 2)
        .set_loop(0)
        .set_output_frames_count(100)
        .set_seek(3)
        .set_bitstream_filter("h264_mp4toannexb")
        .set_preset(ConversionPreset.VERY_FAST)
        .set_codec(VideoCodec.LIBX264)
        .set_scale(VideoSize.HD720)
    )

    expected = [
        "-vf scale=1280:720",
        "-codec:v libx264",
        "-preset veryfast",
        "-bsf:v h264_mp4toannexb",
        "-ss 00:00:03.000",
        "-frames:v 100",
        "-loop 0",
        "-ss 00:00:01.000 -t 00:00:02.000",
        "-vf reverse",
        '-vf "transpose=1"',
        "-s 640x360",
        "-r 30",
        "-filter:v \"subtitles='/subs/a.srt'\"",
    ]
    assert video.build() == " ".join(expected)


def test_video_scale_codec_seek_split_order():
    video = make_video(duration=60).split(10, 5).set_seek(20).set_codec("libx264").set_scale("640x360")

    assert video.build() == (
        "-vf scale=640:360 -codec:v libx264 -ss 00:00:20.000 -ss 00:00:10.000 -t 00:00:05.000"
    )


def test_last_write_wins():
    video = make_video().set_codec("libx264").set_codec("libx265", bitrate=2500)

    assert video.build() == "-codec:v libx265 -b:v 2500k"
    assert video.copy_stream().build() == "-codec:v copy"


def test_seek_and_split_are_independent():
    video = make_video(duration=30).set_seek(5).split(2, 3)

    assert video.staged("seek") == "-ss 00:00:05.000"
    assert video.staged("split") == "-ss 00:00:02.000 -t 00:00:03.000"
    # A video seek is rendered on the output side.
    assert video.build_input_arguments() == ""


def test_seek_beyond_video_duration_fails():
    video = make_video(duration=10)

    with pytest.raises(ArgumentError):
        video.set_seek(timedelta(seconds=11))
    assert video.set_seek(10).staged("seek") == "-ss 00:00:10.000"


@pytest.mark.parametrize(
    "degrees, expected",
    [
        (RotateDegrees.CLOCKWISE, '-vf "transpose=1"'),
        (RotateDegrees.COUNTER_CLOCKWISE, '-vf "transpose=2"'),
        (RotateDegrees.INVERT, '-vf "transpose=2,transpose=2"'),
    ],
)
def test_rotate(degrees, expected):
    assert make_video().rotate(degrees).build() == expected


def test_change_speed():
    assert make_video().change_speed(2.0).build() == '-filter:v "setpts=0.5*PTS"'
    assert make_video().change_speed(0.5).build() == '-filter:v "setpts=2*PTS"'
    with pytest.raises(ArgumentError):
        make_video().change_speed(2.5)


@posix_only
def test_subtitle_path_is_escaped_for_filter_graph():
    video = make_video().add_subtitles("C:\\subs\\movie.srt", encoding="UTF-8", style="Fontsize=24")

    # ffmpeg receives the filter-escaped path after the shell-style split.
    assert split_arguments(video.build()) == [
        "-filter:v",
        "subtitles='C\\:\\\\subs\\\\movie.srt':charenc=UTF-8:force_style='Fontsize=24'",
    ]


def test_watermark_overlay():
    video = make_video().set_watermark("/images/logo.png", Position.UPPER_LEFT)

    assert video.build() == (
        "-filter:v \"movie='/images/logo.png'[watermark];[in]null[base];[base][watermark]overlay=5:5[out]\""
    )


@posix_only
def test_watermark_with_other_filters():
    video = (
        make_video()
        .set_watermark("D:\\logo.png", Position.BOTTOM_RIGHT)
        .change_speed(2.0)
        .add_subtitles("/subs/a.srt")
    )
    option, graph = split_arguments(video.build())

    assert option == "-filter:v"
    assert "movie='D\\:\\\\logo.png'[watermark]" in graph
    assert "[in]subtitles='/subs/a.srt',setpts=0.5*PTS[base]" in graph
    assert "overlay=main_w-overlay_w-5:main_h-overlay_h-5[out]" in graph


def test_set_loop_with_delay():
    assert make_video().set_loop(3, delay=500).build() == "-loop 3 -final_delay 5"


def test_invalid_video_values():
    video = make_video()
    with pytest.raises(ArgumentError):
        video.set_output_frames_count(0)
    with pytest.raises(ArgumentError):
        video.set_framerate(0)
    with pytest.raises(ArgumentError):
        video.split(-1, 5)


# --- Audio ---

def test_audio_build_order_is_fixed():
    audio = (
        make_audio(index=1)
        .split(1, 2)
        .reverse()
        .set_bitrate(128_000)
        .set_channels(2)
        .set_sample_rate(44_100)
        .set_bitstream_filter("aac_adtstoasc")
        .set_codec(AudioCodec.LIBVORBIS)
    )

    assert audio.build() == (
        "-c:a libvorbis -bsf:a aac_adtstoasc -ar:1 44100 -ac:1 2 -b:a:1 128000 "
        "-af areverse -ss 00:00:01.000 -t 00:00:02.000"
    )


def test_audio_seek_is_input_side():
    audio = make_audio().set_seek(5).set_codec("aac")

    assert audio.build() == "-c:a aac"
    assert audio.build_input_arguments() == "-ss 00:00:05.000"


def test_audio_change_bitrate_alias_and_speed():
    audio = make_audio(index=0).change_bitrate(96_000).change_speed(1.5)

    assert audio.build() == '-b:a:0 96000 -filter:a "atempo=1.5"'
    with pytest.raises(ArgumentError):
        audio.change_speed(3)


def test_audio_rejects_invalid_values():
    with pytest.raises(ArgumentError):
        make_audio().set_sample_rate(0)
    with pytest.raises(ArgumentError):
        make_audio().set_channels(-1)


# --- Subtitle ---

def test_subtitle_stream():
    subtitle = make_subtitle(index=2).set_language("jpn").set_codec("mov_text").set_seek(3)

    assert subtitle.build() == "-c:s mov_text -metadata:s:s:2 language=jpn"
    assert subtitle.build_input_arguments() == "-ss 00:00:03.000"
    assert subtitle.language == "jpn"
