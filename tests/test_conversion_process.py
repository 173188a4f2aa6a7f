import os
import threading

import pytest

from ffconductor.domain.exceptions import (
    ArgumentError,
    CancellationError,
    ConversionError,
    ExecutableNotFoundError,
)
from ffconductor.services.conversion import Conversion, ConversionState
from ffconductor.utils.executables import Executables
from tests.helpers import make_audio, make_video, read_argv, skip_on_windows

pytestmark = skip_on_windows


def _conversion(tmp_path):
    return (
        Conversion.new()
        .add_stream(make_video(source="/media/my clip.mp4"), make_audio(source="/media/my clip.mp4"))
        .set_output(tmp_path / "out.mp4")
    )


def test_successful_run_reports_progress(fake_ffmpeg, tmp_path):
    conversion = _conversion(tmp_path)
    percents, lines = [], []

    result = conversion.start(on_progress=lambda p: percents.append(p.percent), on_data=lines.append)

    assert percents == [25, 50, 100]
    assert any(line.startswith("ffmpeg version") for line in lines)
    assert result.success
    assert result.arguments == conversion.arguments
    assert result.output_path == str(tmp_path / "out.mp4")
    assert result.end_time >= result.start_time
    assert conversion.state == ConversionState.SUCCEEDED

    argv = read_argv(fake_ffmpeg)
    assert argv[argv.index("-i") + 1] == "/media/my clip.mp4"
    assert argv[-1] == str(tmp_path / "out.mp4")


def test_succeeded_conversion_is_frozen(fake_ffmpeg, tmp_path):
    conversion = _conversion(tmp_path)
    conversion.start()

    with pytest.raises(ArgumentError):
        conversion.set_output(tmp_path / "other.mp4")
    with pytest.raises(ArgumentError):
        conversion.add_stream(make_video())


def test_raising_progress_observer_does_not_stop_conversion(fake_ffmpeg, tmp_path):
    calls = []

    def _broken_observer(progress):
        calls.append(progress)
        raise RuntimeError("observer bug")

    result = _conversion(tmp_path).start(on_progress=_broken_observer)

    assert result.success
    assert len(calls) == 3
    assert calls[0].process_id > 0


def test_failed_run_raises_with_output(fake_ffmpeg, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_FFMPEG_MODE", "fail")
    conversion = _conversion(tmp_path)

    with pytest.raises(ConversionError) as excinfo:
        conversion.start()

    error = excinfo.value
    assert error.return_code == 1
    assert error.arguments == conversion.arguments
    assert "Invalid data found when processing input" in error.output
    assert "Invalid data found" in str(error)
    assert not isinstance(error, CancellationError)
    assert conversion.state == ConversionState.FAILED

    # A failed conversion can be started again.
    monkeypatch.setenv("FAKE_FFMPEG_MODE", "success")
    assert conversion.start().success


def test_cancelled_run_terminates_and_reaps_ffmpeg(fake_ffmpeg, tmp_path, monkeypatch):
    monkeypatch.setenv("FAKE_FFMPEG_MODE", "hang")
    conversion = _conversion(tmp_path)
    cancel_event = threading.Event()

    def _cancel_on_first_tick(progress):
        threading.Thread(target=cancel_event.set).start()

    with pytest.raises(CancellationError) as excinfo:
        conversion.start(cancel_event=cancel_event, on_progress=_cancel_on_first_tick)

    assert isinstance(excinfo.value, ConversionError)
    assert conversion.state == ConversionState.CANCELLED
    assert conversion.process_id is not None
    with pytest.raises(ProcessLookupError):
        os.kill(conversion.process_id, 0)


def test_cancelled_before_start_spawns_nothing(fake_ffmpeg, tmp_path):
    conversion = _conversion(tmp_path)
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(CancellationError):
        conversion.start(cancel_event=cancel_event)

    assert conversion.process_id is None
    assert not fake_ffmpeg.exists()
    assert conversion.state == ConversionState.CANCELLED


def test_missing_ffmpeg(tmp_path, monkeypatch):
    missing = str(tmp_path / "no-such-ffmpeg")
    monkeypatch.setattr(Executables, "ffmpeg_path", classmethod(lambda cls: missing))
    conversion = _conversion(tmp_path)

    with pytest.raises(ExecutableNotFoundError):
        conversion.start()
    assert conversion.state == ConversionState.FAILED
