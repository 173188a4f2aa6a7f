"""
Main entry point for ffconductor.

This script configures logging, verifies the ffmpeg executables, parses the
command-line arguments and then probes files, concatenates a directory or runs
the batch conversion pipeline.
"""

import sys
from pathlib import Path

import yaml
from loguru import logger

from ffconductor.cli import get_args
from ffconductor.config.common import LOGGER_FORMAT
from ffconductor.domain.exceptions import FFConductorError
from ffconductor.domain.media import get_media_info
from ffconductor.pipeline.batch_pipeline import BatchConversionPipeline
from ffconductor.utils.executables import Executables
from ffconductor.utils.format_utils import formatted_size


# Configure the logger for initial setup. The level is replaced once the
# command-line arguments are known.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


def probe_files(paths):
    """Prints the normalized media information of each file as YAML."""
    failures = 0
    for path in paths:
        try:
            media_info = get_media_info(path)
        except FFConductorError as e:
            logger.error(f"Could not probe '{path}': {e}")
            failures += 1
            continue
        logger.info(f"Probed '{path}': {formatted_size(media_info.size)}, {media_info.duration}")
        print(yaml.dump(media_info.to_dict(), sort_keys=False, allow_unicode=True))
    return failures


def main():
    """
    Main function of the command line.

    1. Parses command-line arguments and re-configures the logger.
    2. Verifies that ffmpeg and ffprobe can be executed.
    3. Runs the selected mode: probe, concatenation or batch conversion.
    """
    args = get_args()

    logger.remove()
    logger.add(sys.stderr, level=args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    if not Executables.verify():
        logger.error("ffmpeg/ffprobe are not available. Aborting.")
        return 1

    if args.probe:
        return 1 if probe_files(args.probe) else 0

    project_path = Path(args.target_dir).resolve() if args.target_dir else Path.cwd().resolve()
    logger.info(f"Target directory: {project_path}")
    pipeline = BatchConversionPipeline(project_path, args=args)

    try:
        if args.concat:
            pipeline.run_concatenation(Path(args.concat))
        else:
            pipeline.run()
    except FFConductorError:
        return 1
    except KeyboardInterrupt:
        logger.warning("Stopped by user.")
        return 130

    logger.success("ffconductor finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
