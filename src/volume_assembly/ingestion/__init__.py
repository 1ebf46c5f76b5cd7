"""Ingestion layer -- slice discovery, decoding, and parallel decode.

Public API::

    from volume_assembly.ingestion import locate_slices, DicomSliceDecoder, decode_all

Lazy imports are used so that pydicom is only imported when a decoder is
actually needed, not at package import time.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from volume_assembly.ingestion.coordinator import decode_all as decode_all
    from volume_assembly.ingestion.decoder import DicomSliceDecoder as DicomSliceDecoder
    from volume_assembly.ingestion.decoder import decode_slice as decode_slice
    from volume_assembly.ingestion.locator import locate_slices as locate_slices

__all__ = [
    "DicomSliceDecoder",
    "decode_all",
    "decode_slice",
    "locate_slices",
]


def __getattr__(name: str) -> object:
    """Lazy-load public symbols on first access."""
    if name == "locate_slices":
        from volume_assembly.ingestion.locator import locate_slices
        return locate_slices
    if name == "DicomSliceDecoder":
        from volume_assembly.ingestion.decoder import DicomSliceDecoder
        return DicomSliceDecoder
    if name == "decode_slice":
        from volume_assembly.ingestion.decoder import decode_slice
        return decode_slice
    if name == "decode_all":
        from volume_assembly.ingestion.coordinator import decode_all
        return decode_all
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
