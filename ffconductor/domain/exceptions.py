"""
Defines custom exception types for ffconductor.

These exceptions allow callers to react to the different ways an ffmpeg
orchestration can fail: a file ffprobe cannot read, invalid caller input, an
ffmpeg run that exits with an error, or a run that was cancelled on request.

All custom exceptions inherit from the base `FFConductorError`.
"""
from typing import Optional


class FFConductorError(Exception):
    """Base class for all custom exceptions in ffconductor."""

    pass


# --- Caller Input ---
class ArgumentError(FFConductorError, ValueError):
    """
    Raised when a caller passes an invalid value.

    Examples are a seek beyond the end of a stream, fewer than two inputs for a
    concatenation, or a stream URI without scheme or host. These errors are
    raised immediately by the mutator or helper that received the value.
    """

    pass


# --- Probe ---
class InvalidMediaError(FFConductorError):
    """
    Raised when ffprobe produces no output or no streams for a source.

    This usually means the file does not exist, is corrupted or is in a format
    ffprobe does not understand. The probe is never retried.
    """

    pass


# --- External Executables ---
class ExecutableNotFoundError(FFConductorError):
    """Raised when the ffmpeg or ffprobe executable cannot be started."""

    pass


# --- Conversion ---
class ConversionError(FFConductorError):
    """
    Raised when ffmpeg exits with a non-zero return code.

    The exception carries everything needed to reproduce the failure outside
    of ffconductor: the exact rendered argument string and the complete
    diagnostic output ffmpeg produced.

    Attributes:
        arguments: The argument string passed to ffmpeg.
        output: The combined stdout/stderr text of the run.
        return_code: The exit code of the process, if it exited.
    """

    def __init__(self, message: str, arguments: str = "", output: str = "", return_code: Optional[int] = None):
        self.arguments = arguments
        self.output = output
        self.return_code = return_code
        details = [message]
        if arguments:
            details.append(f"Arguments: {arguments}")
        if output:
            details.append(f"Output:\n{output}")
        super().__init__("\n".join(details))
        self.message = message


class CancellationError(ConversionError):
    """
    Raised when a running conversion was cancelled through its cancel event.

    By the time this is raised the ffmpeg child process has been terminated
    and reaped.
    """

    pass
