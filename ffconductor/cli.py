"""
Command-Line Interface (CLI) setup for ffconductor.

This module uses Python's `argparse` to define and parse the command-line
arguments that control the batch conversion, the probe output and the
concatenation mode.
"""
import argparse
from pathlib import Path
from typing import List, Optional

from .config.video import DEFAULT_OUTPUT_FORMAT


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for ffconductor.

    Args:
        argv: The arguments to parse; defaults to `sys.argv[1:]`.

    Returns:
        argparse.Namespace: The parsed arguments.
    """
    parser = argparse.ArgumentParser(description="Probe, convert and concatenate media files with ffmpeg.")
    parser.add_argument(
        "--target-dir", type=str, default=None,
        help="Directory to scan for media files (default: current directory)."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Directory for converted files (default: '<target-dir>/converted')."
    )
    parser.add_argument(
        "--format", type=str, default=DEFAULT_OUTPUT_FORMAT,
        help="Output container extension, e.g. mp4, mkv, webm."
    )
    parser.add_argument(
        "--parallel", action="store_true", help="Run one conversion per CPU instead of one at a time."
    )
    parser.add_argument(
        "--keep-subtitles", action="store_true", help="Carry subtitle streams over (as mov_text)."
    )
    parser.add_argument(
        "--overwrite", action="store_true", help="Overwrite existing output files."
    )
    parser.add_argument(
        "--probe", nargs="+", metavar="FILE", default=None,
        help="Print the normalized media information of the given files and exit."
    )
    parser.add_argument(
        "--concat", type=str, metavar="OUTPUT", default=None,
        help="Concatenate all media files of the target directory, in path order, into OUTPUT."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level."
    )

    args = parser.parse_args(argv)

    if args.target_dir and not Path(args.target_dir).is_dir():
        parser.error(f"The target directory '{args.target_dir}' does not exist.")
    args.format = args.format.lstrip(".").lower()
    if not args.format:
        parser.error("--format must not be empty.")

    return args
