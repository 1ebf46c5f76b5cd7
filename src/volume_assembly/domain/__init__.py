"""Domain layer -- models, errors, protocols, and events.

Re-exports all public domain types for convenient access::

    from volume_assembly.domain import SliceRef, VolumeBuffer, DecodeError
"""

from __future__ import annotations

from volume_assembly.domain.errors import (
    ConversionError,
    DecodeError,
    DiscoveryError,
    NotFoundError,
    ShapeMismatchError,
    SliceError,
    UnsupportedEncodingError,
    VolumeAssemblyError,
)
from volume_assembly.domain.events import (
    PIPELINE_FAILED,
    PIPELINE_STATE_CHANGED,
    SLICES_DISCOVERED,
    VOLUME_ASSEMBLED,
    Event,
    EventBus,
)
from volume_assembly.domain.models import (
    ISO_THRESHOLD_RANGE,
    SUPPORTED_DTYPES,
    AppConfig,
    DecodedSlice,
    IsoSurfaceControls,
    PipelineConfig,
    PipelineState,
    SliceRef,
    VolumeBuffer,
)
from volume_assembly.domain.protocols import (
    SliceDecoderProtocol,
    VolumeConsumerProtocol,
)

__all__ = [
    # Models
    "AppConfig",
    "DecodedSlice",
    "IsoSurfaceControls",
    "PipelineConfig",
    "PipelineState",
    "SliceRef",
    "VolumeBuffer",
    "ISO_THRESHOLD_RANGE",
    "SUPPORTED_DTYPES",
    # Errors
    "ConversionError",
    "DecodeError",
    "DiscoveryError",
    "NotFoundError",
    "ShapeMismatchError",
    "SliceError",
    "UnsupportedEncodingError",
    "VolumeAssemblyError",
    # Events
    "PIPELINE_FAILED",
    "PIPELINE_STATE_CHANGED",
    "SLICES_DISCOVERED",
    "VOLUME_ASSEMBLED",
    "Event",
    "EventBus",
    # Protocols
    "SliceDecoderProtocol",
    "VolumeConsumerProtocol",
]
