"""Volume assembly for sequential CT slice series.

Discovers the DICOM slices of one series in a directory, decodes them in
parallel into Hounsfield-scaled intensity arrays, and stacks them into a
single contiguous 3-D buffer ready to be handed to a volume renderer.

Quick usage::

    from volume_assembly import load_volume

    buffer = load_volume("data/DCM_0000")
    data, width, height, depth = buffer.render_payload()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from volume_assembly.pipeline import VolumePipeline as VolumePipeline
    from volume_assembly.pipeline import load_volume as load_volume

__all__ = ["VolumePipeline", "load_volume", "__version__"]


def __getattr__(name: str) -> object:
    """Lazy-load the pipeline so importing the package stays cheap."""
    if name == "VolumePipeline":
        from volume_assembly.pipeline import VolumePipeline
        return VolumePipeline
    if name == "load_volume":
        from volume_assembly.pipeline import load_volume
        return load_volume
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
