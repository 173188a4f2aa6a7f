import argparse
import threading

import pytest
import yaml

import ffconductor.pipeline.batch_pipeline as batch_pipeline
from ffconductor.cli import get_args
from ffconductor.config.common import COMMAND_TEXT, DEFAULT_SUCCESS_LOG_YAML
from ffconductor.domain.exceptions import ConversionError, InvalidMediaError
from ffconductor.pipeline.batch_pipeline import BatchConversionPipeline
from ffconductor.services.conversion import Conversion
from ffconductor.services.logging_service import ErrorLog, SuccessLog
from tests.helpers import make_audio, make_video


# --- Run Logs ---

def test_success_log_appends_indexed_entries(tmp_path):
    log = SuccessLog(tmp_path / "logs", use_dated_filename=False)
    log.write({"output": "/out/a.mp4"})
    log.write({"output": "/out/b.mp4"})

    assert log.log_file_path.name == DEFAULT_SUCCESS_LOG_YAML
    entries = yaml.safe_load(log.log_file_path.read_text(encoding="utf-8"))
    assert entries == [{"index": 1, "output": "/out/a.mp4"}, {"index": 2, "output": "/out/b.mp4"}]


def test_dated_success_logs_do_not_collide(tmp_path):
    first = SuccessLog(tmp_path)
    second = SuccessLog(tmp_path)

    assert first.log_file_path != second.log_file_path
    assert first.log_file_path.name.startswith("log_")


def test_error_log_separates_reports(tmp_path):
    log = ErrorLog(tmp_path)
    log.write("first failure", "Arguments: -i a.mp4")
    log.write("second failure")

    text = log.log_file_path.read_text(encoding="utf-8")
    assert text.count(ErrorLog.SEPARATOR) == 2
    assert text.startswith("first failure\nArguments: -i a.mp4\n")


# --- CLI ---

def test_cli_defaults():
    args = get_args([])

    assert args.format == "mp4"
    assert args.log_level == "INFO"
    assert not args.parallel and not args.overwrite and not args.keep_subtitles


def test_cli_normalizes_format_and_collects_probe_files(tmp_path):
    args = get_args(["--target-dir", str(tmp_path), "--format", ".MKV", "--probe", "a.mp4", "b.mp4"])

    assert args.format == "mkv"
    assert args.probe == ["a.mp4", "b.mp4"]


def test_cli_rejects_missing_target_dir(tmp_path):
    with pytest.raises(SystemExit):
        get_args(["--target-dir", str(tmp_path / "missing")])


# --- Batch Pipeline ---

def _args(**overrides):
    values = dict(output_dir=None, format="mp4", parallel=False, keep_subtitles=False, overwrite=False)
    values.update(overrides)
    return argparse.Namespace(**values)


class DryRunConversion(Conversion):
    """Renders its arguments instead of running ffmpeg; fails for 'broken' sources."""

    def start(self, cancel_event=None, on_progress=None, on_data=None):
        arguments = self.build()
        if "broken" in arguments:
            raise ConversionError("ffmpeg exited with code 1.", arguments, "Invalid data found", 1)
        return arguments


@pytest.fixture
def media_tree(tmp_path):
    root = tmp_path / "project"
    (root / "season 1").mkdir(parents=True)
    (root / "converted").mkdir()
    for name in ("season 1/ep1.mkv", "season 1/ep2.AVI", "broken.mov", "notes.txt", "converted/old.mp4"):
        (root / name).write_bytes(b"")
    return root


def test_discover_files(media_tree):
    pipeline = BatchConversionPipeline(media_tree, _args())

    found = [path.relative_to(media_tree).as_posix() for path in pipeline.discover_files()]

    assert found == ["broken.mov", "season 1/ep1.mkv", "season 1/ep2.AVI"]


def test_output_path_mirrors_tree(media_tree, tmp_path):
    pipeline = BatchConversionPipeline(media_tree, _args(output_dir=str(tmp_path / "out"), format="webm"))

    assert pipeline.output_path_for(media_tree / "season 1" / "ep1.mkv") == tmp_path / "out" / "season 1" / "ep1.webm"


def test_run_converts_and_logs(media_tree, monkeypatch):
    def _fake_convert(source, output_path, keep_subtitles=False):
        if source.name == "ep2.AVI":
            raise InvalidMediaError(f"Invalid file. Cannot load file {source}")
        streams = [make_video(source=str(source)), make_audio(source=str(source))]
        return DryRunConversion.new().add_stream(*streams).set_output(output_path)

    monkeypatch.setattr(batch_pipeline, "convert", _fake_convert)
    pipeline = BatchConversionPipeline(media_tree, _args(overwrite=True))

    pipeline.run()

    entries = yaml.safe_load(pipeline.success_log.log_file_path.read_text(encoding="utf-8"))
    assert [entry["output"] for entry in entries] == [str(media_tree.resolve() / "converted" / "season 1" / "ep1.mp4")]
    assert entries[0]["arguments"].startswith("-y ")

    errors = pipeline.error_log.log_file_path.read_text(encoding="utf-8")
    assert "broken.mov" in errors
    assert "Invalid data found" in errors
    assert "Preparation failed" in errors and "ep2.AVI" in errors

    commands = (pipeline.log_dir / COMMAND_TEXT).read_text(encoding="utf-8").splitlines()
    assert len(commands) == 2
    assert all(line.startswith("ffmpeg ") for line in commands)


def test_interrupt_skips_files_not_prepared_yet(media_tree, monkeypatch):
    started = threading.Event()
    release = threading.Event()
    prepared = []

    def _slow_convert(source, output_path, keep_subtitles=False):
        prepared.append(source.name)
        started.set()
        release.wait(5)
        return DryRunConversion.new().add_stream(make_video(source=str(source))).set_output(output_path)

    def _interrupted_wait(futures):
        started.wait(5)
        threading.Timer(0.5, release.set).start()
        raise KeyboardInterrupt

    monkeypatch.setattr(batch_pipeline, "PREPARE_WORKERS", 1)
    monkeypatch.setattr(batch_pipeline, "convert", _slow_convert)
    monkeypatch.setattr(batch_pipeline.concurrent.futures, "wait", _interrupted_wait)
    pipeline = BatchConversionPipeline(media_tree, _args())

    with pytest.raises(KeyboardInterrupt):
        pipeline.run()

    assert prepared == ["broken.mov"]
