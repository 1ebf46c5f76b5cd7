"""Command-line entry point for volume assembly.

Assemble a slice directory and report the result::

    python -m volume_assembly data/DCM_0000
    python -m volume_assembly data/DCM_0000 --workers 8 --dtype float32 --output ct.nii.gz
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

from volume_assembly.config.settings import get_typed_config
from volume_assembly.domain.models import EXECUTORS, SUPPORTED_DTYPES, PipelineConfig
from volume_assembly.domain.errors import VolumeAssemblyError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="volume_assembly",
        description="Assemble a directory of CT slices into one 3-D volume.",
    )
    parser.add_argument("directory", help="Directory with one DICOM file per slice.")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Decode workers (default: one per CPU).",
    )
    parser.add_argument(
        "--dtype",
        choices=SUPPORTED_DTYPES,
        default=None,
        help="Sample type of the assembled volume (default from config: float16).",
    )
    parser.add_argument(
        "--executor",
        choices=EXECUTORS,
        default=None,
        help="Worker pool kind (default from config: thread).",
    )
    parser.add_argument(
        "--pattern",
        default=None,
        help="Only treat file names matching this glob as slices.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Fail on files that are not slices instead of skipping them.",
    )
    parser.add_argument(
        "--no-preamble-check",
        action="store_true",
        default=False,
        help="Accept files without the DICOM 'DICM' preamble marker.",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the volume to a .npy, .nii or .nii.gz file.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML overlay applied on top of config/default.yaml.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug mode with verbose logging.",
    )
    return parser


def _configure_logging(level: int | str) -> None:
    """Set up root logger."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run the pipeline, and return the exit status."""
    args = build_parser().parse_args(argv)

    try:
        app_config = get_typed_config(args.config)
    except (OSError, ValueError) as exc:
        _configure_logging("DEBUG" if args.debug else "INFO")
        logger.error("Cannot load configuration: %s", exc)
        return 1

    level = "DEBUG" if args.debug else str(
        app_config.get("logging.level", "INFO")
    ).upper()
    _configure_logging(level)

    overrides: dict = {}
    if args.workers is not None:
        overrides["workers"] = args.workers
    if args.dtype is not None:
        overrides["dtype"] = args.dtype
    if args.executor is not None:
        overrides["executor"] = args.executor
    if args.pattern is not None:
        overrides["pattern"] = args.pattern
    if args.strict:
        overrides["on_unclassified"] = "error"
    if args.no_preamble_check:
        overrides["require_dicom_preamble"] = False

    from volume_assembly.assembly.export import check_volume_path, save_volume
    from volume_assembly.pipeline import VolumePipeline

    try:
        output = check_volume_path(args.output) if args.output else None
        config = replace(PipelineConfig.from_app_config(app_config), **overrides)
        pipeline = VolumePipeline(config)
        buffer = pipeline.run(args.directory)
    except (VolumeAssemblyError, ValueError) as exc:
        logger.error("Volume assembly failed: %s", exc)
        return 1

    low, high = buffer.value_range()
    logger.info(
        "Volume %dx%dx%d %s, %.1f MB, values [%.1f, %.1f]",
        buffer.width, buffer.height, buffer.depth, buffer.dtype.name,
        buffer.nbytes / (1024 ** 2), low, high,
    )

    if output is not None:
        try:
            save_volume(buffer, output)
        except OSError as exc:
            logger.error("Cannot write %s: %s", output, exc)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
