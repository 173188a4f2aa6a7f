"""
This module provides the on-disk run logs written by the batch pipeline.

Failures go to a human-readable text file (ErrorLog) that contains everything
needed to reproduce them by hand: the source, the ffmpeg arguments and the
complete diagnostic output. Successful conversions are recorded in a YAML list
(SuccessLog) that can be processed by other tools.
"""

import random
import string
import threading
from datetime import date
from pathlib import Path
from typing import Any, Dict, List

import yaml
from loguru import logger

from ..config.common import DEFAULT_SUCCESS_LOG_YAML, SUCCESS_LOG_RANDOM_LENGTH


class Log:
    """
    Base class of the run logs: one file inside a log directory.

    Queue workers report from several threads at once, so every write holds
    the log's lock.
    """

    def __init__(self, log_dir: Path, filename: str):
        self.log_dir: Path = log_dir.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file_path: Path = self.log_dir / filename
        self._lock = threading.Lock()

    @staticmethod
    def random_suffix(length: int = SUCCESS_LOG_RANDOM_LENGTH) -> str:
        return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


class ErrorLog(Log):
    """Appends failure reports to a plain text file."""

    SEPARATOR = "=" * 50

    def __init__(self, log_dir: Path, filename: str = "error.txt"):
        super().__init__(log_dir, filename)

    def write(self, *lines: str):
        """
        Appends one report: the given lines followed by a separator line.

        If the file cannot be written, the report goes to the application logger
        instead so it is not lost.
        """
        if not lines:
            return

        report = "\n".join(lines) + f"\n{self.SEPARATOR}\n"
        try:
            with self._lock, self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(report)
        except OSError as e:
            logger.error(f"Could not append to {self.log_file_path}: {e}\n{report}")


class SuccessLog(Log):
    """
    Records successful conversions as a YAML list.

    Each entry receives an increasing `index`. The whole list is rewritten on
    every write so the file is always valid YAML.
    """

    def __init__(self, log_dir: Path, use_dated_filename: bool = True):
        """
        Args:
            log_dir: The directory where the log file is stored.
            use_dated_filename: Name the file `log_<date>_<random>.yaml` instead
                                of the fixed default name, so separate runs
                                never write into the same file.
        """
        if use_dated_filename:
            filename = f"log_{date.today():%Y%m%d}_{self.random_suffix()}.yaml"
        else:
            filename = DEFAULT_SUCCESS_LOG_YAML
        super().__init__(log_dir, filename)

    def entries(self) -> List[Dict[str, Any]]:
        """Returns the entries currently on disk. A missing or unreadable file counts as empty."""
        if not self.log_file_path.is_file():
            return []
        try:
            loaded = yaml.safe_load(self.log_file_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Unreadable success log {self.log_file_path}, starting over: {e}")
            return []
        if loaded is None:
            return []
        if not isinstance(loaded, list):
            logger.warning(f"Success log {self.log_file_path} is not a list, starting over.")
            return []
        return [entry for entry in loaded if isinstance(entry, dict)]

    def write(self, entry: Dict[str, Any]):
        with self._lock:
            entries = self.entries()
            next_index = max((e.get("index", 0) for e in entries), default=0) + 1
            entries.append({"index": next_index, **entry})
            try:
                self.log_file_path.write_text(
                    yaml.dump(entries, default_flow_style=False, sort_keys=False, allow_unicode=True, indent=4, width=220),
                    encoding="utf-8",
                )
            except OSError as e:
                logger.error(f"Could not write success log {self.log_file_path}: {e}")
