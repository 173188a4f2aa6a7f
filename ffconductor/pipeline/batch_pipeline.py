"""
Batch conversion of a directory tree.

`BatchConversionPipeline` discovers the media files below a directory, prepares
one conversion per file on a thread pool (probing is I/O bound and can run
while earlier files are already converting), and feeds the prepared
conversions into a `ConversionQueue`. Results are written to the run logs in
the output directory.
"""
import argparse
import concurrent.futures
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from loguru import logger

from .conversion_queue import ConversionQueue
from ..config.common import COMMAND_TEXT, RUN_LOG_DIR_NAME
from ..config.video import (
    DEFAULT_OUTPUT_DIR_NAME,
    DEFAULT_OUTPUT_FORMAT,
    EXCEPT_FOLDERS_KEYWORDS,
    VIDEO_EXTENSIONS,
)
from ..domain.exceptions import ConversionError, FFConductorError
from ..services.conversion import Conversion, ConversionProgress
from ..services.conversion_helpers import concatenate, convert
from ..services.logging_service import ErrorLog, SuccessLog
from ..utils.ffmpeg_utils import append_command_log
from ..utils.format_utils import format_timedelta

# Threads used to probe and prepare conversions ahead of the queue.
PREPARE_WORKERS = 4


class BatchConversionPipeline:
    """
    Converts every media file below `project_dir` into `args.format`.

    Args:
        project_dir: The directory to scan.
        args: Parsed command-line arguments (see `ffconductor.cli.get_args`).
    """

    def __init__(self, project_dir: Path, args: argparse.Namespace):
        self.project_dir: Path = project_dir.resolve()
        self.args = args
        output_dir = getattr(args, "output_dir", None)
        self.output_dir: Path = Path(output_dir).resolve() if output_dir else self.project_dir / DEFAULT_OUTPUT_DIR_NAME
        self.output_format: str = (getattr(args, "format", None) or DEFAULT_OUTPUT_FORMAT).lstrip(".")
        self.log_dir = self.output_dir / RUN_LOG_DIR_NAME
        self.error_log = ErrorLog(self.log_dir)
        self.success_log = SuccessLog(self.log_dir)

    # --- Discovery ---

    def _is_excluded(self, path: Path) -> bool:
        if self.output_dir in path.parents:
            return True
        relative = path.relative_to(self.project_dir).as_posix().lower()
        return any(keyword.lower() in relative for keyword in EXCEPT_FOLDERS_KEYWORDS)

    def discover_files(self) -> List[Path]:
        """Returns the media files below the project directory, sorted by path."""
        files = [
            path
            for path in self.project_dir.rglob("*")
            if path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS and not self._is_excluded(path)
        ]
        files.sort()
        logger.debug(f"Discovered {len(files)} media file(s) under {self.project_dir}")
        return files

    def output_path_for(self, source: Path) -> Path:
        relative = source.relative_to(self.project_dir)
        return (self.output_dir / relative).with_suffix(f".{self.output_format}")

    # --- Preparation ---

    def prepare(self, source: Path) -> Conversion:
        """Probes `source` and builds its conversion. Runs on the preparation pool."""
        output_path = self.output_path_for(source)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        conversion = convert(source, output_path, keep_subtitles=getattr(self.args, "keep_subtitles", False))
        return conversion.set_overwrite_output(getattr(self.args, "overwrite", False))

    # --- Observers ---

    def _on_converted(self, sequence: int, total: int, conversion: Conversion):
        append_command_log(self.log_dir / COMMAND_TEXT, f"ffmpeg {conversion.arguments}")
        self.success_log.write(
            {
                "output": conversion.output_path,
                "arguments": conversion.arguments,
                "finished": datetime.now().isoformat(timespec="seconds"),
            }
        )
        logger.success(f"[{sequence}/{total}] Converted: {conversion.output_path}")

    def _on_exception(self, sequence: int, total: int, conversion: Conversion, error: BaseException):
        append_command_log(self.log_dir / COMMAND_TEXT, f"ffmpeg {conversion.arguments}")
        messages = [
            f"Conversion failed: {conversion.output_path}",
            f"Arguments: {conversion.arguments}",
            f"Error: {type(error).__name__}: {getattr(error, 'message', error)}",
        ]
        if isinstance(error, ConversionError) and error.output:
            messages.append(f"Output:\n{error.output}")
        self.error_log.write(*messages)

    @staticmethod
    def _log_progress(progress: ConversionProgress):
        logger.info(
            f"{progress.percent:3d}% ({format_timedelta(progress.duration)} / "
            f"{format_timedelta(progress.total_length)})"
        )

    # --- Runs ---

    def run(self):
        """Converts all discovered files and waits until the queue has drained."""
        files = [path for path in self.discover_files() if self.output_path_for(path) != path]
        if not files:
            logger.info(f"No media files to convert under {self.project_dir}")
            return

        logger.info(f"Converting {len(files)} file(s) to '{self.output_format}' into {self.output_dir}")
        queue = ConversionQueue(
            parallel=getattr(self.args, "parallel", False),
            on_converted=self._on_converted,
            on_exception=self._on_exception,
        )
        with concurrent.futures.ThreadPoolExecutor(max_workers=PREPARE_WORKERS) as executor, queue:
            futures: Dict[concurrent.futures.Future, Path] = {}
            for path in files:
                future = executor.submit(self.prepare, path)
                futures[future] = path
                queue.add_future(future)
            queue.start()

            try:
                concurrent.futures.wait(futures)
                for future, path in futures.items():
                    error = future.exception()
                    if error is not None:
                        logger.error(f"Could not prepare {path.name}: {error}")
                        self.error_log.write(f"Preparation failed: {path}", f"Error: {type(error).__name__}: {error}")
                queue.join()
            except KeyboardInterrupt:
                logger.warning("Interrupted, cancelling running conversions.")
                queue.cancel()
                # Files that were not probed yet are skipped.
                executor.shutdown(wait=False, cancel_futures=True)
                raise

        logger.info(f"Processed {queue.number} of {queue.total} queued conversion(s).")

    def run_concatenation(self, output_path: Path):
        """Joins all discovered files, in path order, into `output_path`."""
        files = self.discover_files()
        output_path = output_path.resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conversion = concatenate(output_path, *files).set_overwrite_output(getattr(self.args, "overwrite", False))
            result = conversion.start(on_progress=self._log_progress)
        except FFConductorError as e:
            logger.error(f"Concatenation into {output_path} failed: {getattr(e, 'message', e)}")
            self.error_log.write(f"Concatenation failed: {output_path}", f"Error: {e}")
            raise

        append_command_log(self.log_dir / COMMAND_TEXT, f"ffmpeg {result.arguments}")
        self.success_log.write(
            {
                "output": result.output_path,
                "arguments": result.arguments,
                "inputs": [str(path) for path in files],
                "finished": result.end_time.isoformat(timespec="seconds"),
            }
        )
        logger.success(f"Concatenated {len(files)} file(s) into {output_path} in {format_timedelta(result.duration)}")
