"""Synthetic slice series for demos and tests."""
from __future__ import annotations

from volume_assembly.data.synthetic import (
    create_phantom,
    generate_phantom_series,
    write_ct_slice,
    write_series,
)

__all__ = [
    "create_phantom",
    "generate_phantom_series",
    "write_ct_slice",
    "write_series",
]
