"""Persist an assembled volume and read it back.

Two formats are supported, chosen by file suffix:

- ``.npy`` -- the ``(width, height, depth)`` array as-is, via numpy.
- ``.nii`` / ``.nii.gz`` -- a NIfTI-1 image via ``nibabel`` with an identity
  affine.  NIfTI-1 has no half-precision type, so float16 volumes are stored
  as float32.

Sample values are written unchanged in both cases.
"""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from volume_assembly.domain.models import VolumeBuffer

# ---------------------------------------------------------------------------
# Optional dependency import
# ---------------------------------------------------------------------------
try:
    import nibabel as nib
except ImportError as _exc:  # pragma: no cover
    raise ImportError(
        "nibabel is required for NIfTI export. Install it with: "
        "pip install 'nibabel>=5.0'"
    ) from _exc

logger = logging.getLogger(__name__)

_NIFTI_SUFFIXES = (".nii", ".nii.gz")



def check_volume_path(path: str | Path) -> Path:
    """Return *path* as a :class:`Path` if its suffix names a supported format.

    Raises
    ------
    ValueError
        If the suffix of *path* is not ``.npy``, ``.nii`` or ``.nii.gz``.
    """
    path = Path(path)
    if not (_is_nifti(path) or path.suffix == ".npy"):
        raise ValueError(
            f"Unsupported volume file type '{path.name}'; use .npy, .nii or .nii.gz"
        )
    return path


def save_volume(buffer: VolumeBuffer, path: str | Path) -> Path:
    """Write *buffer* to *path* as ``.npy`` or NIfTI.

    Returns
    -------
    Path
        The written file.

    Raises
    ------
    ValueError
        If the suffix of *path* is not ``.npy``, ``.nii`` or ``.nii.gz``.
    """
    path = check_volume_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    volume = buffer.as_volume()

    if _is_nifti(path):
        data = volume.astype(np.float32) if volume.dtype == np.float16 else volume
        nib.save(nib.Nifti1Image(np.asarray(data), np.eye(4)), str(path))
    else:
        np.save(path, volume)

    logger.info("Saved %dx%dx%d volume to %s", *buffer.shape, path)
    return path


def load_saved_volume(path: str | Path) -> VolumeBuffer:
    """Read a volume written by :func:`save_volume`.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the stored array is not 3-D or the suffix is unsupported.
    """
    path = check_volume_path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Volume file not found: {path}")

    if _is_nifti(path):
        volume = np.asarray(nib.load(str(path)).dataobj)
    else:
        volume = np.load(path)

    if volume.ndim != 3:
        raise ValueError(f"Expected a 3-D volume in {path}, got shape {volume.shape}")

    flat = np.ascontiguousarray(volume).reshape(-1)
    flat.flags.writeable = False
    width, height, depth = volume.shape
    return VolumeBuffer(
        data=flat,
        width=int(width),
        height=int(height),
        depth=int(depth),
        source=str(path),
    )


def _is_nifti(path: Path) -> bool:
    return path.name.endswith(_NIFTI_SUFFIXES)
