import stat
import sys

import pytest

from ffconductor.domain.media import normalize_probe
from ffconductor.utils.executables import Executables
from tests.helpers import FAKE_FFMPEG, format_payload, probe_payload


@pytest.fixture
def fake_ffmpeg(tmp_path, monkeypatch):
    """Installs a scripted stand-in for ffmpeg and returns the file its argv is recorded in."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "ffmpeg"
    script.write_text(FAKE_FFMPEG.format(python=sys.executable), encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    argv_file = tmp_path / "argv.json"
    monkeypatch.setenv("FAKE_FFMPEG_ARGV", str(argv_file))
    monkeypatch.setenv("FAKE_FFMPEG_MODE", "success")
    Executables.set_executables_path(bin_dir)
    yield argv_file
    Executables.set_executables_path(None)


class ProbeTable(dict):
    def __init__(self):
        super().__init__()
        self.probed = []


@pytest.fixture
def fake_probe(monkeypatch):
    """
    Replaces `get_media_info` in the helper module with synthetic probes.

    Returns a dict mapping a path to `{"streams": {...}, "format": {...}}`
    keyword overrides for `probe_payload`/`format_payload`; unknown paths get a
    13 second 1280x720 h264/aac file.
    """
    import ffconductor.services.conversion_helpers as helpers

    table = ProbeTable()

    def _fake_get_media_info(path):
        table.probed.append(str(path))
        options = table.get(str(path), {})
        streams = probe_payload(**options.get("streams", {}))
        return normalize_probe(str(path), streams, format_payload(**options.get("format", {})))

    monkeypatch.setattr(helpers, "get_media_info", _fake_get_media_info)
    return table
