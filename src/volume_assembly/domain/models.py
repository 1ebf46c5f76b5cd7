"""Domain models for the volume assembly pipeline.

All models are frozen dataclasses to enforce immutability.  Array payloads
are numpy arrays; the assembled :class:`VolumeBuffer` additionally marks its
array read-only so that the rendering side cannot mutate shared sample data.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np
import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SUPPORTED_DTYPES: tuple[str, ...] = ("float16", "float32", "float64")
EXECUTORS: tuple[str, ...] = ("thread", "process")
UNCLASSIFIED_POLICIES: tuple[str, ...] = ("skip", "error")

# Slider bounds of the isosurface threshold exposed by the renderer.
ISO_THRESHOLD_RANGE: tuple[float, float] = (0.0, 1024.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _empty_array() -> np.ndarray:
    """Return an empty float16 array."""
    return np.empty(0, dtype=np.float16)


def _empty_dict() -> dict[str, Any]:
    """Return an empty dictionary."""
    return {}


# ---------------------------------------------------------------------------
# Pipeline state
# ---------------------------------------------------------------------------

class PipelineState(str, Enum):
    """Lifecycle of a single pipeline run."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    DECODING = "decoding"
    ASSEMBLING = "assembling"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.READY, PipelineState.FAILED)


# ---------------------------------------------------------------------------
# Slice models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SliceRef:
    """One source file and its position in the discovery order."""

    index: int
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class DecodedSlice:
    """A decoded 2-D grid of rescaled intensity samples.

    ``pixels`` keeps the decoder's native axis order: axis 0 is reported as
    ``width`` and axis 1 as ``height``.  No transpose is applied anywhere in
    the pipeline, so the assembled volume indexes as ``volume[w, h, depth]``.
    """

    index: int
    name: str
    pixels: np.ndarray = field(default_factory=_empty_array)
    rescale_slope: float = 1.0
    rescale_intercept: float = 0.0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def dtype(self) -> np.dtype:
        return self.pixels.dtype


# ---------------------------------------------------------------------------
# Volume models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VolumeBuffer:
    """Flattened volume plus the shape metadata a renderer needs.

    ``data`` is the C-order (row-major) linearisation of a volume of shape
    ``(width, height, depth)``: width is the slowest varying axis and depth
    the fastest, so sample ``(x, y, z)`` lives at
    ``x * height * depth + y * depth + z``.
    """

    data: np.ndarray = field(default_factory=_empty_array)
    width: int = 0
    height: int = 0
    depth: int = 0
    source: str = ""

    @property
    def shape(self) -> tuple[int, int, int]:
        return (self.width, self.height, self.depth)

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def nbytes(self) -> int:
        return int(self.data.nbytes)

    def as_volume(self) -> np.ndarray:
        """Return a zero-copy ``(width, height, depth)`` view of ``data``."""
        return self.data.reshape(self.shape)

    def value_range(self) -> tuple[float, float]:
        """Return the (min, max) sample values as Python floats."""
        if self.data.size == 0:
            return (0.0, 0.0)
        return (float(np.min(self.data)), float(np.max(self.data)))

    def render_payload(self) -> tuple[np.ndarray, int, int, int]:
        """Return ``(buffer, width, height, depth)`` for a rendering consumer."""
        return (self.data, self.width, self.height, self.depth)

    def tobytes(self) -> bytes:
        return self.data.tobytes()


@dataclass(frozen=True)
class IsoSurfaceControls:
    """Runtime controls the renderer exposes next to the volume.

    The threshold is compared against raw volume samples, which is why the
    decoder must keep intensities in their rescaled units.
    """

    threshold: float = 0.0
    color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)

    def __post_init__(self) -> None:
        low, high = ISO_THRESHOLD_RANGE
        if not low <= self.threshold <= high:
            raise ValueError(
                f"Iso threshold {self.threshold} outside [{low}, {high}]"
            )
        if len(self.color) != 4 or any(not 0.0 <= c <= 1.0 for c in self.color):
            raise ValueError(f"RGBA tint must be four values in [0, 1], got {self.color}")


# ---------------------------------------------------------------------------
# Configuration models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AppConfig:
    """Application configuration loaded from YAML with environment overlays.

    Configuration is resolved in order:
      1. ``config/default.yaml``
      2. An optional overlay file (e.g. the one named by ``VA_CONFIG``)
      3. Environment variables prefixed with ``VA_``
    """

    data: dict[str, Any] = field(default_factory=_empty_dict)

    # -- factory -----------------------------------------------------------
    @staticmethod
    def load(
        default_path: str | Path = "config/default.yaml",
        overlay_path: str | Path | None = None,
        env_prefix: str = "VA_",
        skip_env: tuple[str, ...] = (),
    ) -> AppConfig:
        """Load configuration from YAML files and environment variables.

        Parameters
        ----------
        default_path:
            Path to the base configuration file; skipped if it does not exist.
        overlay_path:
            Optional path to a user overlay.  Unlike the default file it must
            exist when given.
        env_prefix:
            Prefix for environment variable overrides.  A variable named
            ``VA_DECODE__WORKERS`` maps to ``config["decode"]["workers"]``.
        skip_env:
            Prefixed variables that are not configuration keys, such as the
            one naming the overlay file.

        Returns
        -------
        AppConfig
            Frozen configuration object exposing the merged dictionary via
            ``data`` and typed helpers.

        Raises
        ------
        FileNotFoundError
            If *overlay_path* is given but does not exist.
        """
        merged: dict[str, Any] = {}

        default = Path(default_path)
        if default.exists():
            merged = _deep_merge(merged, _read_yaml(default))

        if overlay_path is not None:
            overlay = Path(overlay_path)
            if not overlay.is_file():
                raise FileNotFoundError(f"Configuration overlay not found: {overlay}")
            merged = _deep_merge(merged, _read_yaml(overlay))

        for key, value in os.environ.items():
            if key.startswith(env_prefix) and key not in skip_env:
                parts = key[len(env_prefix):].lower().split("__")
                _set_nested(merged, parts, _coerce(value))

        return AppConfig(data=merged)

    # -- typed accessors ---------------------------------------------------

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Retrieve a value using dot-separated path, e.g. ``decode.dtype``."""
        parts = dotted_key.split(".")
        node: Any = self.data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def section(self, name: str) -> dict[str, Any]:
        """Return a top-level section as a dict (empty dict if missing)."""
        val = self.data.get(name)
        if isinstance(val, dict):
            return dict(val)
        return {}


@dataclass(frozen=True)
class PipelineConfig:
    """Typed, validated view over the pipeline settings.

    ``workers=None`` means "one worker per available CPU".
    """

    pattern: str = "*"
    require_dicom_preamble: bool = True
    on_unclassified: str = "skip"
    dtype: str = "float16"
    workers: int | None = None
    executor: str = "thread"
    timing_enabled: bool = True

    def __post_init__(self) -> None:
        if self.dtype not in SUPPORTED_DTYPES:
            raise ValueError(
                f"Unsupported volume dtype '{self.dtype}'. "
                f"Choose from: {list(SUPPORTED_DTYPES)}"
            )
        if self.executor not in EXECUTORS:
            raise ValueError(
                f"Unknown executor '{self.executor}'. Choose from: {list(EXECUTORS)}"
            )
        if self.on_unclassified not in UNCLASSIFIED_POLICIES:
            raise ValueError(
                f"Unknown unclassified-file policy '{self.on_unclassified}'. "
                f"Choose from: {list(UNCLASSIFIED_POLICIES)}"
            )
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    @classmethod
    def from_app_config(cls, config: AppConfig) -> PipelineConfig:
        """Build a :class:`PipelineConfig` from the merged configuration tree.

        A ``decode.workers`` value of ``0`` (or missing) selects the CPU count.
        """
        workers = config.get("decode.workers", 0)
        return cls(
            pattern=str(config.get("discovery.pattern", "*")),
            require_dicom_preamble=bool(
                config.get("discovery.require_dicom_preamble", True)
            ),
            on_unclassified=str(config.get("discovery.on_unclassified", "skip")),
            dtype=str(config.get("decode.dtype", "float16")),
            workers=int(workers) if workers else None,
            executor=str(config.get("decode.executor", "thread")),
            timing_enabled=bool(config.get("timing.enabled", True)),
        )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return raw


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overlay* into *base* (non-destructive)."""
    merged = dict(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _set_nested(d: dict[str, Any], parts: list[str], value: Any) -> None:
    """Set a value in a nested dict using a list of keys."""
    for part in parts[:-1]:
        d = d.setdefault(part, {})
    if parts:
        d[parts[-1]] = value


def _coerce(value: str) -> Any:
    """Best-effort coercion from string to bool / int / float / str.

    Only words map to booleans; ``"0"`` and ``"1"`` stay integers so that
    ``VA_DECODE__WORKERS=1`` means one worker.
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
