"""Generate a synthetic CT slice series for trying out the pipeline.

Writes a body phantom (air, soft tissue, spine) in Hounsfield Units as one
DICOM file per slice, named ``CT000001``, ``CT000002``, ... so that file
names sort in slice order.

Usage:
    PYTHONPATH=src python scripts/generate_test_series.py [--size 128] [--slices 64]

Output directory (default): data/sample_series/DCM_0000
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from volume_assembly.data.synthetic import generate_phantom_series

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

OUTPUT_DIR = Path(__file__).resolve().parent.parent / "data" / "sample_series" / "DCM_0000"


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--output", type=Path, default=OUTPUT_DIR)
    parser.add_argument("--size", type=int, default=128, help="In-plane size in pixels.")
    parser.add_argument("--slices", type=int, default=64, help="Number of slices.")
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    paths = generate_phantom_series(args.output, args.size, args.slices, args.seed)
    logger.info("Series ready: %d files in %s", len(paths), args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
