"""Single-slice DICOM decoder.

Uses ``pydicom`` to parse one slice file and turns its stored pixel values
into modality units (Hounsfield units for CT) in the pipeline's floating
dtype.  The rescale slope/intercept is always applied in float64 *before*
narrowing to the target dtype, so a ``float16`` volume still holds HU values
rather than raw detector counts.

Decoding is all-or-nothing: either a complete :class:`DecodedSlice` is
returned or a :class:`SliceError` subclass naming the file is raised.
"""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from volume_assembly.config.environment import resolve_dtype
from volume_assembly.domain.errors import (
    ConversionError,
    DecodeError,
    UnsupportedEncodingError,
)
from volume_assembly.domain.models import DecodedSlice, SliceRef

# ---------------------------------------------------------------------------
# Optional dependency import -- fail with a clear message.
# ---------------------------------------------------------------------------
try:
    import pydicom
    from pydicom.dataset import Dataset
    from pydicom.pixels import get_decoder
except ImportError as _exc:  # pragma: no cover
    raise ImportError(
        "pydicom is required for slice decoding. Install it with: "
        "pip install 'pydicom>=3.0'"
    ) from _exc

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Supported encodings
# ---------------------------------------------------------------------------

SUPPORTED_PHOTOMETRIC = frozenset({"MONOCHROME1", "MONOCHROME2"})
SUPPORTED_BITS_ALLOCATED = frozenset({8, 16, 32})


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class DicomSliceDecoder:
    """Decode DICOM slice files into rescaled float arrays.

    Instances hold no per-call state and pickle cleanly, so one decoder can be
    shared by every worker of a thread or process pool.

    Parameters
    ----------
    dtype:
        Target floating dtype: ``"float16"`` (default), ``"float32"`` or
        ``"float64"``.
    """

    def __init__(self, dtype: str | np.dtype = "float16") -> None:
        self.dtype = resolve_dtype(dtype)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dtype={self.dtype.name!r})"

    def decode(self, ref: SliceRef) -> DecodedSlice:
        """Decode the file behind *ref*; see :func:`decode_slice`."""
        return decode_slice(ref, self.dtype)


def decode_slice(ref: SliceRef, dtype: str | np.dtype = "float16") -> DecodedSlice:
    """Read, validate, rescale and convert one slice file.

    Parameters
    ----------
    ref:
        The located slice file.
    dtype:
        Target floating dtype of the returned pixels.

    Returns
    -------
    DecodedSlice
        2-D pixels in modality units, in DICOM ``(Rows, Columns)`` order.

    Raises
    ------
    DecodeError
        If the file is not a readable DICOM dataset or has no usable pixel data.
    UnsupportedEncodingError
        If the photometric interpretation, samples per pixel, bit depth, frame
        count, modality LUT or transfer syntax is not handled.
    ConversionError
        If rescaled values are not finite or overflow *dtype*.
    """
    target = resolve_dtype(dtype)
    path = ref.path

    ds = _read_dataset(ref)
    _check_encoding(ds, ref)
    slope, intercept = _rescale_parameters(ds, ref)
    _check_transfer_syntax(ds, ref)

    # With a usable decoder in place, any failure below is a damaged payload.
    try:
        raw = ds.pixel_array
    except NotImplementedError as exc:
        syntax = _transfer_syntax(ds)
        raise UnsupportedEncodingError(
            f"Cannot decode pixel data of {path} (transfer syntax {syntax}): {exc}",
            path,
            ref.index,
        ) from exc
    except Exception as exc:
        raise DecodeError(
            f"Malformed pixel data in {path}: {exc}", path, ref.index
        ) from exc

    if raw.ndim != 2:
        raise UnsupportedEncodingError(
            f"Expected a single 2-D frame in {path}, got pixel array of shape "
            f"{raw.shape}",
            path,
            ref.index,
        )

    pixels = rescale_to_dtype(raw, slope, intercept, target, ref)
    logger.debug(
        "Decoded %s: %dx%d, slope=%g, intercept=%g",
        ref.name, pixels.shape[0], pixels.shape[1], slope, intercept,
    )
    return DecodedSlice(
        index=ref.index,
        name=ref.name,
        pixels=pixels,
        rescale_slope=slope,
        rescale_intercept=intercept,
    )


def rescale_to_dtype(
    raw: np.ndarray,
    slope: float,
    intercept: float,
    dtype: np.dtype,
    ref: SliceRef | None = None,
) -> np.ndarray:
    """Apply ``raw * slope + intercept`` in float64, then narrow to *dtype*.

    Raises
    ------
    ConversionError
        If any rescaled value is NaN/inf or lies outside the finite range of
        *dtype*.
    """
    values = raw.astype(np.float64)
    if slope != 1.0:
        values *= slope
    if intercept != 0.0:
        values += intercept

    path = ref.path if ref is not None else None
    index = ref.index if ref is not None else None
    label = ref.name if ref is not None else "slice"

    if not np.all(np.isfinite(values)):
        raise ConversionError(f"Non-finite rescaled values in {label}", path, index)

    limit = float(np.finfo(dtype).max)
    if values.size:
        low, high = float(values.min()), float(values.max())
        if low < -limit or high > limit:
            raise ConversionError(
                f"Rescaled values of {label} span [{low}, {high}], outside the "
                f"{np.dtype(dtype).name} range +/-{limit}",
                path,
                index,
            )
    return values.astype(dtype)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _read_dataset(ref: SliceRef) -> Dataset:
    path: Path = ref.path
    try:
        ds = pydicom.dcmread(str(path))
    except Exception as exc:
        raise DecodeError(
            f"Failed to read DICOM file {path}: {exc}", path, ref.index
        ) from exc
    if "PixelData" not in ds:
        raise DecodeError(f"DICOM file {path} contains no pixel data", path, ref.index)
    return ds


def _check_encoding(ds: Dataset, ref: SliceRef) -> None:
    path = ref.path

    samples = int(ds.get("SamplesPerPixel", 1) or 1)
    if samples != 1:
        raise UnsupportedEncodingError(
            f"{path} has {samples} samples per pixel; only single-channel slices "
            "are supported",
            path,
            ref.index,
        )

    photometric = str(ds.get("PhotometricInterpretation", "MONOCHROME2")).strip()
    if photometric not in SUPPORTED_PHOTOMETRIC:
        raise UnsupportedEncodingError(
            f"{path} uses photometric interpretation {photometric!r}; expected "
            f"one of {sorted(SUPPORTED_PHOTOMETRIC)}",
            path,
            ref.index,
        )

    bits = ds.get("BitsAllocated")
    if bits is None or int(bits) not in SUPPORTED_BITS_ALLOCATED:
        raise UnsupportedEncodingError(
            f"{path} allocates {bits} bits per pixel; expected one of "
            f"{sorted(SUPPORTED_BITS_ALLOCATED)}",
            path,
            ref.index,
        )

    frames = int(ds.get("NumberOfFrames", 1) or 1)
    if frames != 1:
        raise UnsupportedEncodingError(
            f"{path} is a multi-frame image ({frames} frames); expected one "
            "slice per file",
            path,
            ref.index,
        )

    if "ModalityLUTSequence" in ds:
        raise UnsupportedEncodingError(
            f"{path} declares a non-linear modality LUT; only rescale "
            "slope/intercept is supported",
            path,
            ref.index,
        )


def _rescale_parameters(ds: Dataset, ref: SliceRef) -> tuple[float, float]:
    try:
        slope = ds.get("RescaleSlope")
        intercept = ds.get("RescaleIntercept")
        slope = 1.0 if slope in (None, "") else float(slope)
        intercept = 0.0 if intercept in (None, "") else float(intercept)
    except (TypeError, ValueError) as exc:
        raise DecodeError(
            f"Invalid rescale parameters in {ref.path}: {exc}", ref.path, ref.index
        ) from exc
    return slope, intercept


def _check_transfer_syntax(ds: Dataset, ref: SliceRef) -> None:
    """Raise UnsupportedEncodingError unless pydicom can decode the syntax.

    Files without a recorded transfer syntax are left to ``pixel_array``.
    """
    file_meta = getattr(ds, "file_meta", None)
    uid = file_meta.get("TransferSyntaxUID") if file_meta is not None else None
    if not uid:
        return
    try:
        decoder = get_decoder(uid)
    except NotImplementedError as exc:
        raise UnsupportedEncodingError(
            f"{ref.path} uses transfer syntax {uid}, which has no pixel data "
            "decoder",
            ref.path,
            ref.index,
        ) from exc
    if not decoder.is_available:
        raise UnsupportedEncodingError(
            f"{ref.path} uses transfer syntax {uid} but no decoder plugin is "
            f"available ({'; '.join(decoder.missing_dependencies)})",
            ref.path,
            ref.index,
        )


def _transfer_syntax(ds: Dataset) -> str:
    file_meta = getattr(ds, "file_meta", None)
    if file_meta is None:
        return "unknown"
    return str(file_meta.get("TransferSyntaxUID", "unknown"))
