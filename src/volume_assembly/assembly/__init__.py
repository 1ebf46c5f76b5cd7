"""Assembly layer -- stacking decoded slices and persisting the result.

Public API::

    from volume_assembly.assembly import assemble_volume, save_volume
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from volume_assembly.assembly.assembler import (
    assemble_volume,
    stack_slices,
    validate_uniform,
)

if TYPE_CHECKING:
    from volume_assembly.assembly.export import load_saved_volume as load_saved_volume
    from volume_assembly.assembly.export import save_volume as save_volume

__all__ = [
    "assemble_volume",
    "load_saved_volume",
    "save_volume",
    "stack_slices",
    "validate_uniform",
]


def __getattr__(name: str) -> object:
    """Lazy-load the export helpers so nibabel is only imported when needed."""
    if name == "save_volume":
        from volume_assembly.assembly.export import save_volume
        return save_volume
    if name == "load_saved_volume":
        from volume_assembly.assembly.export import load_saved_volume
        return load_saved_volume
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
