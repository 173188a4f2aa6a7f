"""
This module provides the Executables class, which locates the ffmpeg and
ffprobe binaries ffconductor drives and verifies that they can be run.
"""
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from ..config.common import FFMPEG_EXECUTABLE, FFPROBE_EXECUTABLE, FFMPEG_DIR


class Executables:
    """
    Resolves the paths of the external ffmpeg tools.

    The lookup order is: a directory set at runtime with
    `set_executables_path`, the `ffmpeg_dir` from `config.user.yaml`, the
    system PATH, and finally the bare executable name (leaving the final
    lookup to the operating system).
    """

    _override_dir: Optional[Path] = None

    @classmethod
    def set_executables_path(cls, directory: Union[str, Path, None]):
        """
        Overrides the directory containing ffmpeg and ffprobe.

        Args:
            directory: The directory to use, or None to go back to the
                       configured/system lookup.
        """
        cls._override_dir = Path(directory) if directory else None
        logger.debug(f"Executables directory override set to: {cls._override_dir}")

    @staticmethod
    def _executable_name(base_name: str) -> str:
        return f"{base_name}.exe" if sys.platform == "win32" else base_name

    @classmethod
    def _resolve(cls, base_name: str) -> str:
        exe_name = cls._executable_name(base_name)

        for candidate_dir, origin in ((cls._override_dir, "override"), (FFMPEG_DIR, "configured")):
            if not candidate_dir:
                continue
            candidate = candidate_dir / exe_name
            if candidate.is_file():
                logger.trace(f"Using {base_name} from {origin} path: '{candidate}'")
                return str(candidate.resolve())
            logger.warning(f"{origin.capitalize()} directory '{candidate_dir}' has no '{exe_name}'. Falling back.")

        found = shutil.which(exe_name)
        if found:
            return str(Path(found).resolve())
        return exe_name

    @classmethod
    def ffmpeg_path(cls) -> str:
        """Returns the absolute path of ffmpeg, or its bare name if it cannot be located."""
        return cls._resolve(FFMPEG_EXECUTABLE)

    @classmethod
    def ffprobe_path(cls) -> str:
        """Returns the absolute path of ffprobe, or its bare name if it cannot be located."""
        return cls._resolve(FFPROBE_EXECUTABLE)

    @classmethod
    def verify(cls) -> bool:
        """
        Verifies that ffmpeg and ffprobe can be executed.

        Runs `<tool> -version` for both tools and logs the first line of the
        output. Failures are logged with a hint on how to configure the paths.

        Returns:
            True if both tools answered, False otherwise.
        """
        all_ok = True
        for tool_path in (cls.ffmpeg_path(), cls.ffprobe_path()):
            try:
                result = subprocess.run(
                    [tool_path, "-version"],
                    check=True,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
                first_line = (result.stdout.splitlines() or [""])[0]
                logger.info(f"Version check successful: {first_line}")
            except subprocess.CalledProcessError as e:
                logger.error(f"'{tool_path} -version' failed (return code {e.returncode}):\n{e.stderr}")
                all_ok = False
            except FileNotFoundError:
                logger.error(
                    f"'{tool_path}' not found. Add it to your system's PATH or set "
                    "'paths.ffmpeg_dir' in 'config.user.yaml'."
                )
                all_ok = False
        return all_ok
