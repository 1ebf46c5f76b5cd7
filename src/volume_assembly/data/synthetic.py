"""Synthetic CT slice series writer.

Writes small, valid single-frame DICOM CT slices with ``pydicom`` so that the
pipeline can be exercised without patient data.  Stored values are raw
detector counts; the written ``RescaleSlope``/``RescaleIntercept`` map them
back to the intended Hounsfield units.

All phantoms are reproducible via a fixed numpy RNG seed.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

try:
    import pydicom
    from pydicom.dataset import Dataset, FileMetaDataset
    from pydicom.uid import CTImageStorage, ExplicitVRLittleEndian, generate_uid
except ImportError as _exc:  # pragma: no cover
    raise ImportError(
        "pydicom is required to write synthetic slices. Install it with: "
        "pip install 'pydicom>=3.0'"
    ) from _exc

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Hounsfield Unit values for the phantom tissues
HU_AIR = -1000.0
HU_SOFT_TISSUE = 40.0
HU_BONE_CORTICAL = 1000.0

# Typical CT storage convention: unsigned counts offset by -1024 HU
DEFAULT_SLOPE = 1.0
DEFAULT_INTERCEPT = -1024.0

_DTYPES_BY_BITS = {
    (8, False): np.uint8,
    (8, True): np.int8,
    (16, False): np.uint16,
    (16, True): np.int16,
    (32, False): np.uint32,
    (32, True): np.int32,
}


# ---------------------------------------------------------------------------
# Single slice
# ---------------------------------------------------------------------------

def write_ct_slice(
    path: str | Path,
    stored: np.ndarray,
    *,
    slope: float = DEFAULT_SLOPE,
    intercept: float = DEFAULT_INTERCEPT,
    bits_allocated: int = 16,
    signed: bool = False,
    photometric: str = "MONOCHROME2",
    instance_number: int = 1,
    series_uid: str | None = None,
) -> Path:
    """Write one CT slice holding the raw *stored* values.

    Parameters
    ----------
    path:
        Destination file; parent directories are created.
    stored:
        2-D array of raw stored values, shape ``(Rows, Columns)``.
    slope, intercept:
        Rescale parameters recorded in the header.
    bits_allocated:
        8, 16 or 32.
    signed:
        Pixel representation (two's complement when True).
    photometric:
        Photometric interpretation to record.
    instance_number:
        Value of ``InstanceNumber``.
    series_uid:
        Series instance UID shared by all slices of a series.

    Returns
    -------
    Path
        The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    stored = np.asarray(stored)
    if stored.ndim != 2:
        raise ValueError(f"Slice data must be 2-D, got shape {stored.shape}")

    np_dtype = _DTYPES_BY_BITS.get((bits_allocated, signed))
    if np_dtype is None:
        raise ValueError(f"Unsupported bits_allocated={bits_allocated}")
    pixels = stored.astype(np_dtype)

    sop_uid = generate_uid()
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = CTImageStorage
    file_meta.MediaStorageSOPInstanceUID = sop_uid
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = Dataset()
    ds.file_meta = file_meta
    ds.SOPClassUID = CTImageStorage
    ds.SOPInstanceUID = sop_uid
    ds.SeriesInstanceUID = series_uid or generate_uid()
    ds.Modality = "CT"
    ds.InstanceNumber = instance_number
    ds.Rows, ds.Columns = pixels.shape
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = photometric
    ds.BitsAllocated = bits_allocated
    ds.BitsStored = bits_allocated
    ds.HighBit = bits_allocated - 1
    ds.PixelRepresentation = 1 if signed else 0
    ds.RescaleSlope = f"{slope:g}"
    ds.RescaleIntercept = f"{intercept:g}"
    ds.PixelData = pixels.astype(pixels.dtype.newbyteorder("<")).tobytes()

    ds.save_as(path, enforce_file_format=True)
    return path


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------

def hu_to_stored(
    hu: np.ndarray,
    slope: float = DEFAULT_SLOPE,
    intercept: float = DEFAULT_INTERCEPT,
) -> np.ndarray:
    """Invert the rescale so that ``stored * slope + intercept == hu``."""
    return np.rint((np.asarray(hu, dtype=np.float64) - intercept) / slope)


def create_phantom(
    size: int = 64,
    n_slices: int = 32,
    seed: int = 42,
    noise_hu: float = 12.0,
) -> np.ndarray:
    """Create a body phantom in HU with shape ``(size, size, n_slices)``.

    An ellipsoidal soft-tissue body in air with a bright spine cylinder along
    the slice axis, plus Gaussian noise.
    """
    volume = np.full((size, size, n_slices), HU_AIR, dtype=np.float64)
    xx, yy, zz = np.meshgrid(
        np.arange(size), np.arange(size), np.arange(n_slices), indexing="ij"
    )
    c, cz = size / 2.0, n_slices / 2.0

    body = (
        ((xx - c) / (size * 0.40)) ** 2
        + ((yy - c) / (size * 0.35)) ** 2
        + ((zz - cz) / max(n_slices * 0.55, 1.0)) ** 2
    ) <= 1.0
    volume[body] = HU_SOFT_TISSUE

    spine = ((xx - c) ** 2 + (yy - (c - size * 0.22)) ** 2) <= (size * 0.05) ** 2
    volume[spine & body] = HU_BONE_CORTICAL

    rng = np.random.default_rng(seed)
    volume += rng.normal(0.0, noise_hu, size=volume.shape)
    return volume


def write_series(
    directory: str | Path,
    volume_hu: np.ndarray,
    *,
    prefix: str = "CT",
    slope: float = DEFAULT_SLOPE,
    intercept: float = DEFAULT_INTERCEPT,
) -> list[Path]:
    """Write ``volume_hu[:, :, i]`` as file ``{prefix}{i+1:06d}`` for every i.

    The zero-padded names sort lexicographically in slice order.

    Returns
    -------
    list[Path]
        Written files in slice order.
    """
    directory = Path(directory)
    volume_hu = np.asarray(volume_hu)
    if volume_hu.ndim != 3:
        raise ValueError(f"Volume must be 3-D, got shape {volume_hu.shape}")

    stored = hu_to_stored(volume_hu, slope, intercept)
    signed = bool(stored.min() < 0)
    series_uid = generate_uid()
    paths = []
    for i in range(volume_hu.shape[2]):
        paths.append(
            write_ct_slice(
                directory / f"{prefix}{i + 1:06d}",
                stored[:, :, i],
                slope=slope,
                intercept=intercept,
                signed=signed,
                instance_number=i + 1,
                series_uid=series_uid,
            )
        )
    logger.info("Wrote %d slices to %s", len(paths), directory)
    return paths


def generate_phantom_series(
    directory: str | Path,
    size: int = 64,
    n_slices: int = 32,
    seed: int = 42,
) -> list[Path]:
    """Create a phantom and write it as a slice series in *directory*."""
    return write_series(directory, create_phantom(size, n_slices, seed))


def read_stored_values(path: str | Path) -> np.ndarray:
    """Return the raw stored pixel values of a slice (no rescale)."""
    return pydicom.dcmread(str(path)).pixel_array
