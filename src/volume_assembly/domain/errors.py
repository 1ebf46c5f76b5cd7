"""Error taxonomy for the volume assembly pipeline.

Every failure is fatal for the run: input files are static, so there is
nothing to retry and no partial volume is ever returned.  Each error names the
offending directory, file or slice index so that the caller can act on it.

All exceptions only pass the message to ``Exception.__init__`` and keep the
rest on instance attributes, which keeps them picklable across a process pool.
"""

from __future__ import annotations

from pathlib import Path


class VolumeAssemblyError(Exception):
    """Base class for every error raised by :mod:`volume_assembly`."""


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class NotFoundError(VolumeAssemblyError, FileNotFoundError):
    """The input directory does not exist or cannot be read."""

    def __init__(self, message: str, directory: str | Path | None = None) -> None:
        super().__init__(message)
        self.directory = Path(directory) if directory is not None else None


class DiscoveryError(VolumeAssemblyError, ValueError):
    """The directory contents cannot be turned into a slice series."""

    def __init__(self, message: str, path: str | Path | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


# ---------------------------------------------------------------------------
# Per-slice decode
# ---------------------------------------------------------------------------

class SliceError(VolumeAssemblyError):
    """A single slice file could not be turned into a decoded slice."""

    def __init__(
        self,
        message: str,
        path: str | Path | None = None,
        index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None
        self.index = index


class DecodeError(SliceError):
    """The slice container is malformed or carries no pixel data."""


class UnsupportedEncodingError(SliceError):
    """The declared pixel encoding is not one the decoder handles."""


class ConversionError(SliceError):
    """Rescaled intensities do not fit the target numeric type."""


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

class ShapeMismatchError(VolumeAssemblyError, ValueError):
    """A slice does not share the dimensions of the first slice."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        expected: tuple[int, ...] | None = None,
        actual: tuple[int, ...] | None = None,
    ) -> None:
        super().__init__(message)
        self.index = index
        self.expected = expected
        self.actual = actual
