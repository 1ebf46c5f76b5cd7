"""Shared pytest fixtures for the volume assembly test suite."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from volume_assembly.data.synthetic import write_ct_slice
from volume_assembly.domain.models import DecodedSlice, PipelineConfig

# Constant values of the three-slice scenario series
SCENARIO_VALUES = (100.0, -200.0, 300.0)


# ---------------------------------------------------------------------------
# Slice file fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def write_slice(tmp_path):
    """Factory writing a signed 16-bit CT slice of constant or given values.

    ``write_slice(name, value_or_array, **kwargs)`` returns the file path.
    Keyword arguments are passed through to :func:`write_ct_slice`; slope and
    intercept default to identity so stored values equal HU values.
    """

    def _write(
        name: str,
        values: float | np.ndarray = 0.0,
        shape: tuple[int, int] = (4, 4),
        directory: Path | None = None,
        **kwargs,
    ) -> Path:
        if np.isscalar(values):
            values = np.full(shape, values)
        kwargs.setdefault("slope", 1.0)
        kwargs.setdefault("intercept", 0.0)
        kwargs.setdefault("signed", True)
        target = (directory or tmp_path / "series") / name
        return write_ct_slice(target, np.asarray(values), **kwargs)

    return _write


@pytest.fixture()
def scenario_dir(write_slice, tmp_path) -> Path:
    """Three 4x4 constant slices CT000001..CT000003 with slope 1, intercept 0."""
    for i, value in enumerate(SCENARIO_VALUES, start=1):
        write_slice(f"CT{i:06d}", value)
    return tmp_path / "series"


@pytest.fixture()
def serial_config() -> PipelineConfig:
    """Pipeline settings with a small pool and timing enabled."""
    return PipelineConfig(workers=2, dtype="float16")


# ---------------------------------------------------------------------------
# In-memory slice fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_slice():
    """Factory building a DecodedSlice filled with *value* (defaults to its index)."""

    def _make(
        index: int,
        shape: tuple[int, ...] = (4, 4),
        value: float | None = None,
        dtype: str = "float32",
    ) -> DecodedSlice:
        fill = float(index) if value is None else value
        return DecodedSlice(
            index=index,
            name=f"CT{index + 1:06d}",
            pixels=np.full(shape, fill, dtype=dtype),
        )

    return _make


@pytest.fixture()
def decoded_slices() -> list[DecodedSlice]:
    """Five 4x3 slices where pixel (x, y) of slice z holds ``100x + 10y + z``."""
    slices = []
    xx, yy = np.meshgrid(np.arange(4), np.arange(3), indexing="ij")
    for z in range(5):
        pixels = (100 * xx + 10 * yy + z).astype(np.float32)
        slices.append(DecodedSlice(index=z, name=f"CT{z + 1:06d}", pixels=pixels))
    return slices
