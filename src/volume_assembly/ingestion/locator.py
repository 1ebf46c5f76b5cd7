"""Slice file discovery.

Lists the candidate slice files of one series directory and fixes their order
by file name.  Filesystem enumeration order is never used: it differs between
platforms and runs, and the order chosen here becomes the depth axis of the
assembled volume.
"""
from __future__ import annotations

import fnmatch
import logging
from pathlib import Path

from volume_assembly.domain.errors import DiscoveryError, NotFoundError
from volume_assembly.domain.models import UNCLASSIFIED_POLICIES, SliceRef

logger = logging.getLogger(__name__)

# DICOM Part 10 files carry a 128-byte preamble followed by this marker.
_DICOM_PREAMBLE_LENGTH = 128
_DICOM_MAGIC = b"DICM"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def locate_slices(
    directory: str | Path,
    *,
    pattern: str = "*",
    require_dicom_preamble: bool = True,
    on_unclassified: str = "skip",
) -> list[SliceRef]:
    """Discover the slice files in *directory* in a reproducible order.

    Parameters
    ----------
    directory:
        Directory holding one file per slice of a single series.
    pattern:
        ``fnmatch`` pattern a file name must match, e.g. ``"CT*"``.
    require_dicom_preamble:
        If True, a file only counts as a slice when it carries the ``DICM``
        marker at byte offset 128.
    on_unclassified:
        ``"skip"`` ignores files that are not slices; ``"error"`` raises
        :class:`DiscoveryError` on the first one (in name order).

    Returns
    -------
    list[SliceRef]
        Slices sorted by file name, with ``index`` equal to list position.

    Raises
    ------
    NotFoundError
        If *directory* does not exist, is not a directory, or cannot be read.
    DiscoveryError
        If an unclassifiable file is found under the ``"error"`` policy, or if
        no slice files are found at all.
    ValueError
        If *on_unclassified* is not a known policy.
    """
    if on_unclassified not in UNCLASSIFIED_POLICIES:
        raise ValueError(
            f"Unknown unclassified-file policy '{on_unclassified}'. "
            f"Choose from: {list(UNCLASSIFIED_POLICIES)}"
        )

    directory = Path(directory)
    if not directory.is_dir():
        raise NotFoundError(f"Slice directory not found: {directory}", directory)

    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise NotFoundError(
            f"Cannot read slice directory {directory}: {exc}", directory
        ) from exc

    paths: list[Path] = []
    for entry in entries:
        if entry.is_dir():
            continue
        if _is_slice_file(entry, pattern, require_dicom_preamble):
            paths.append(entry)
        elif on_unclassified == "error":
            raise DiscoveryError(f"Not a slice file: {entry}", entry)
        else:
            logger.debug("Skipping non-slice file %s", entry)

    if not paths:
        raise DiscoveryError(
            f"No slice files matching '{pattern}' found in {directory}", directory
        )

    logger.info("Discovered %d slice files in %s", len(paths), directory)
    return [SliceRef(index=i, path=p) for i, p in enumerate(paths)]


def has_dicom_preamble(path: str | Path) -> bool:
    """Return True if *path* carries the DICOM Part 10 ``DICM`` marker."""
    try:
        with open(path, "rb") as fh:
            fh.seek(_DICOM_PREAMBLE_LENGTH)
            return fh.read(len(_DICOM_MAGIC)) == _DICOM_MAGIC
    except OSError:
        return False


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _is_slice_file(path: Path, pattern: str, require_dicom_preamble: bool) -> bool:
    if path.name.startswith(".") or not path.is_file():
        return False
    if not fnmatch.fnmatchcase(path.name, pattern):
        return False
    if require_dicom_preamble and not has_dicom_preamble(path):
        return False
    return True
