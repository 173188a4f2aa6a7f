"""
The Conversion: one fully specified ffmpeg invocation.

A `Conversion` collects streams (from a probe or built by hand) and free-form
parameters, renders them into a single ffmpeg argument string and runs ffmpeg
with it. While ffmpeg runs, its diagnostic output is read incrementally on a
reader thread; every "time=HH:MM:SS.xx" token is turned into a
`ConversionProgress` and handed to the caller's `on_progress` callback.

Argument layout produced by `build()`:

1. overwrite policy (`-y` or `-n`)
2. pre-input parameters and the input duration limit (`-t`)
3. per distinct source: the input-side fragments of its streams (seeks), the
   parameters bound to that input, then `-i "source"`
4. per stream, in insertion order: `-map <input>:<index>` and the stream's own
   rendered fragments
5. post-input parameters, preset, threads, output parameters and format
6. the destination path

Execution is cancelled through a `threading.Event`. Once it is set, ffmpeg is
terminated (and killed if it does not exit in time) and reaped before
`CancellationError` is raised, so no ffmpeg process outlives the call.
"""
import codecs
import os
import queue
import re
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import IO, Callable, List, Optional, Tuple, Union

from loguru import logger

from ..config.common import OUTPUT_READ_CHUNK_SIZE, PROCESS_TERMINATE_TIMEOUT
from ..domain.codecs import ConversionPreset, MediaFormat, ParameterPosition
from ..domain.exceptions import (
    ArgumentError,
    CancellationError,
    ConversionError,
    ExecutableNotFoundError,
)
from ..domain.media import MediaInfo, get_media_info
from ..domain.streams import Stream, TimeValue, as_timedelta
from ..utils.executables import Executables
from ..utils.ffmpeg_utils import display_command, parse_progress_time, split_arguments
from ..utils.format_utils import needs_quoting, quote_argument, to_ffmpeg_time

# How often (seconds) the output loop wakes up to check the cancel event.
CANCEL_POLL_INTERVAL = 0.1

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class ConversionState(Enum):
    CONFIGURED = "configured"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ConversionProgress:
    """
    One progress tick of a running conversion.

    Attributes:
        duration: Media time processed so far.
        total_length: Expected media time of the whole output.
        process_id: PID of the ffmpeg process.
    """

    duration: timedelta
    total_length: timedelta
    process_id: int

    @property
    def percent(self) -> int:
        total = self.total_length.total_seconds()
        if total <= 0:
            return 0
        return int(round(round(self.duration.total_seconds() / total, 2) * 100))


@dataclass(frozen=True)
class ConversionResult:
    """
    The outcome of a successful conversion.

    `media_info` probes the produced file the first time it is accessed.
    """

    success: bool
    arguments: str
    output: str
    output_path: str
    start_time: datetime
    end_time: datetime

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @cached_property
    def media_info(self) -> MediaInfo:
        return get_media_info(self.output_path)


@dataclass
class _ProcessOutcome:
    return_code: Optional[int]
    lines: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def output(self) -> str:
        return "\n".join(self.lines)


ProgressCallback = Callable[[ConversionProgress], None]
DataCallback = Callable[[str], None]


class Conversion:
    """
    Builder and runner of one ffmpeg invocation.

    All builder methods return the conversion itself so calls can be chained::

        conversion = (
            Conversion.new()
            .add_stream(video, audio)
            .set_output("out.mp4")
            .set_overwrite_output(True)
        )
        result = conversion.start(on_progress=print)

    A conversion can only be modified while it is not running and has not
    succeeded. Starting it again after a failure or a cancellation is an
    explicit restart.
    """

    def __init__(self):
        self._streams: List[Stream] = []
        self._parameters: List[Tuple[Union[ParameterPosition, int], str]] = []
        self._output_path: Optional[str] = None
        self._overwrite = False
        self._input_time: Optional[timedelta] = None
        self._output_format: Optional[MediaFormat] = None
        self._preset: Optional[ConversionPreset] = None
        self._threads: Optional[int] = None
        self._expected_duration: Optional[timedelta] = None
        self._state_lock = threading.Lock()
        self.state = ConversionState.CONFIGURED
        # The last rendered argument string, kept for inspection after a run.
        self.arguments: str = ""
        self.process_id: Optional[int] = None

    @classmethod
    def new(cls) -> "Conversion":
        return cls()

    def __repr__(self) -> str:
        return f"Conversion(output={self._output_path!r}, state={self.state.value})"

    # --- Configuration ---

    def _ensure_configurable(self):
        if self.state in (ConversionState.RUNNING, ConversionState.SUCCEEDED):
            raise ArgumentError(f"Cannot modify a conversion that is {self.state.value}.")

    @property
    def streams(self) -> List[Stream]:
        return list(self._streams)

    @property
    def output_path(self) -> Optional[str]:
        return self._output_path

    def add_stream(self, *streams: Stream) -> "Conversion":
        """
        Adds streams to the output. The order of the calls decides the input
        and `-map` order.

        Raises:
            ArgumentError: If a stream has no source to read from.
        """
        self._ensure_configurable()
        for stream in streams:
            if stream is None:
                continue
            if not stream.source:
                raise ArgumentError(f"{stream!r} has no source.")
            self._streams.append(stream)
        return self

    def add_parameter(self, parameter: str, position: ParameterPosition = ParameterPosition.POST_INPUT) -> "Conversion":
        """Adds a free-form ffmpeg parameter, e.g. ``add_parameter("-re", ParameterPosition.PRE_INPUT)``."""
        self._ensure_configurable()
        self._parameters.append((ParameterPosition(position), parameter.strip()))
        return self

    def add_input_parameter(self, parameter: str, input_index: int) -> "Conversion":
        """Adds a parameter rendered right before the input with `input_index`."""
        self._ensure_configurable()
        if input_index < 0:
            raise ArgumentError(f"Input index must not be negative: {input_index}")
        self._parameters.append((input_index, parameter.strip()))
        return self

    def set_output(self, output_path: Union[str, Path]) -> "Conversion":
        self._ensure_configurable()
        if not str(output_path).strip():
            raise ArgumentError("Output path must not be empty.")
        self._output_path = str(output_path)
        return self

    def set_overwrite_output(self, overwrite: bool = True) -> "Conversion":
        self._ensure_configurable()
        self._overwrite = bool(overwrite)
        return self

    def set_input_time(self, duration: TimeValue) -> "Conversion":
        """Limits how much of the input is read (`-t` before the inputs)."""
        self._ensure_configurable()
        duration_td = as_timedelta(duration)
        if duration_td <= timedelta(0):
            raise ArgumentError(f"Input time must be positive: {duration_td}")
        self._input_time = duration_td
        return self

    def set_output_format(self, output_format: Union[MediaFormat, str]) -> "Conversion":
        self._ensure_configurable()
        self._output_format = MediaFormat(output_format)
        return self

    def set_preset(self, preset: Union[ConversionPreset, str]) -> "Conversion":
        self._ensure_configurable()
        self._preset = ConversionPreset(preset)
        return self

    def use_multi_thread(self, threads: Optional[int] = None) -> "Conversion":
        """Lets ffmpeg use `threads` threads (all CPUs if None)."""
        self._ensure_configurable()
        self._threads = threads if threads else (os.cpu_count() or 1)
        return self

    def set_expected_duration(self, duration: TimeValue) -> "Conversion":
        """
        Sets the expected output duration used for progress reporting when the
        conversion has no streams to derive it from (e.g. a filter-graph-only
        concatenation).
        """
        self._ensure_configurable()
        self._expected_duration = as_timedelta(duration)
        return self

    # --- Rendering ---

    def _collect_inputs(self) -> List[str]:
        inputs: List[str] = []
        for stream in self._streams:
            if stream.source not in inputs:
                inputs.append(stream.source)
        return inputs

    def _parameters_at(self, position: Union[ParameterPosition, int]) -> List[str]:
        return [text for pos, text in self._parameters if pos == position]

    def build(self) -> str:
        """
        Renders the complete ffmpeg argument string (without the executable).

        The result is also stored in `self.arguments`.
        """
        inputs = self._collect_inputs()
        input_numbers = {source: number for number, source in enumerate(inputs)}

        parts: List[str] = ["-y" if self._overwrite else "-n"]

        parts.extend(self._parameters_at(ParameterPosition.PRE_INPUT))
        if self._input_time is not None:
            parts.append(f"-t {to_ffmpeg_time(self._input_time)}")

        for number, source in enumerate(inputs):
            parts.extend(s.build_input_arguments() for s in self._streams if s.source == source)
            parts.extend(self._parameters_at(number))
            parts.append(f"-i {quote_argument(source)}")

        for stream in self._streams:
            parts.append(f"-map {input_numbers[stream.source]}:{stream.index}")
            parts.append(stream.build())

        parts.extend(self._parameters_at(ParameterPosition.POST_INPUT))
        if self._preset is not None:
            parts.append(f"-preset {str(self._preset).lower()}")
        if self._threads:
            parts.append(f"-threads {self._threads}")
        parts.extend(self._parameters_at(ParameterPosition.OUTPUT))
        if self._output_format is not None:
            parts.append(f"-f {self._output_format}")

        if self._output_path:
            output = self._output_path
            parts.append(quote_argument(output) if needs_quoting(output) else output)

        self.arguments = " ".join(part.strip() for part in parts if part and part.strip())
        return self.arguments

    def _total_duration(self) -> timedelta:
        if self._input_time is not None:
            return self._input_time
        longest = max((s.precise_duration for s in self._streams), default=timedelta(0))
        if longest > timedelta(0):
            return longest
        return self._expected_duration or timedelta(0)

    # --- Execution ---

    def start(
        self,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_data: Optional[DataCallback] = None,
    ) -> ConversionResult:
        """
        Runs ffmpeg and blocks until it exits.

        Args:
            cancel_event: Setting this event terminates ffmpeg.
            on_progress: Called with a `ConversionProgress` for every progress
                         line ffmpeg prints.
            on_data: Called with every raw line of ffmpeg output.

        Returns:
            A `ConversionResult` describing the successful run.

        Raises:
            ArgumentError: If no output was set or the conversion is already running.
            ConversionError: If ffmpeg exits with a non-zero code.
            CancellationError: If `cancel_event` was set during the run.
            ExecutableNotFoundError: If ffmpeg cannot be started.
        """
        with self._state_lock:
            if self.state == ConversionState.RUNNING:
                raise ArgumentError("Conversion is already running.")
            if not self._output_path:
                raise ArgumentError("No output path set. Call set_output() before start().")
            self.state = ConversionState.RUNNING

        arguments = self.build()
        start_time = datetime.now()

        if cancel_event is not None and cancel_event.is_set():
            self.state = ConversionState.CANCELLED
            raise CancellationError("Conversion was cancelled before it started.", arguments)

        try:
            outcome = self._execute(arguments, cancel_event, on_progress, on_data)
        except BaseException:
            self.state = ConversionState.FAILED
            raise

        if outcome.cancelled:
            self.state = ConversionState.CANCELLED
            logger.info(f"Conversion to '{self._output_path}' was cancelled.")
            raise CancellationError("Conversion was cancelled.", arguments, outcome.output, outcome.return_code)

        if outcome.return_code != 0:
            self.state = ConversionState.FAILED
            logger.error(f"ffmpeg exited with code {outcome.return_code} for '{self._output_path}'.")
            raise ConversionError(
                f"ffmpeg exited with code {outcome.return_code}.",
                arguments,
                outcome.output,
                outcome.return_code,
            )

        self.state = ConversionState.SUCCEEDED
        end_time = datetime.now()
        logger.debug(f"Conversion to '{self._output_path}' finished in {end_time - start_time}.")
        return ConversionResult(
            success=True,
            arguments=arguments,
            output=outcome.output,
            output_path=self._output_path,
            start_time=start_time,
            end_time=end_time,
        )

    def _execute(
        self,
        arguments: str,
        cancel_event: Optional[threading.Event],
        on_progress: Optional[ProgressCallback],
        on_data: Optional[DataCallback],
    ) -> _ProcessOutcome:
        """Spawns ffmpeg and collects its exit code and output. Never raises for a non-zero exit."""
        ffmpeg_path = Executables.ffmpeg_path()
        if os.name == "nt":
            command = f"{quote_argument(ffmpeg_path)} {arguments}"
            display_cmd_str = command
        else:
            command = [ffmpeg_path] + split_arguments(arguments)
            display_cmd_str = display_command(command)
        logger.debug(f"Executing: {display_cmd_str}")

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except FileNotFoundError as e:
            logger.error(f"ffmpeg not found at '{ffmpeg_path}'.")
            raise ExecutableNotFoundError(f"Executable not found: {ffmpeg_path}") from e

        self.process_id = process.pid
        lines: "queue.Queue[Optional[str]]" = queue.Queue()
        reader = threading.Thread(
            target=_pump_output,
            args=(process.stdout, lines),
            name=f"ffmpeg-output-{process.pid}",
            daemon=True,
        )
        reader.start()

        total = self._total_duration()
        outcome = _ProcessOutcome(return_code=None)
        try:
            while True:
                if not outcome.cancelled and cancel_event is not None and cancel_event.is_set():
                    outcome.cancelled = True
                    _terminate(process)
                try:
                    line = lines.get(timeout=CANCEL_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if line is None:
                    break
                outcome.lines.append(line)
                if on_data is not None:
                    _notify(on_data, line)
                elapsed = parse_progress_time(line)
                if elapsed is not None and on_progress is not None and total > timedelta(0):
                    progress = ConversionProgress(elapsed, total, process.pid)
                    logger.trace(f"[pid {process.pid}] {progress.percent}% ({elapsed} / {total})")
                    _notify(on_progress, progress)
        finally:
            if process.poll() is None:
                _terminate(process)
            reader.join()
            outcome.return_code = process.wait()
            if process.stdout is not None:
                process.stdout.close()

        return outcome


def _pump_output(pipe: IO[bytes], sink: "queue.Queue[Optional[str]]"):
    """Reads ffmpeg output in chunks and forwards complete lines. Ends with None."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    try:
        while True:
            chunk = pipe.read1(OUTPUT_READ_CHUNK_SIZE)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *complete, pending = _LINE_BREAK.split(pending)
            for line in complete:
                if line:
                    sink.put(line)
        pending += decoder.decode(b"", final=True)
        if pending:
            sink.put(pending)
    finally:
        sink.put(None)


def _terminate(process: subprocess.Popen):
    """Terminates a process, kills it if it does not exit in time, and reaps it."""
    if process.poll() is not None:
        return
    logger.debug(f"Terminating ffmpeg (pid {process.pid}).")
    process.terminate()
    try:
        process.wait(timeout=PROCESS_TERMINATE_TIMEOUT)
    except subprocess.TimeoutExpired:
        logger.warning(f"ffmpeg (pid {process.pid}) did not exit after terminate, killing it.")
        process.kill()
        process.wait()


def _notify(callback: Callable, *args):
    try:
        callback(*args)
    except Exception:
        logger.exception(f"Observer {callback!r} raised; the conversion continues.")
