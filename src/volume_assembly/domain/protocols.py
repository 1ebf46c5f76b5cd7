"""Protocol interfaces at the pipeline's seams.

Using :class:`typing.Protocol` enables structural subtyping: a decoder or a
rendering consumer only needs the right method, not a common base class.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from volume_assembly.domain.models import DecodedSlice, SliceRef


@runtime_checkable
class SliceDecoderProtocol(Protocol):
    """Turn one located slice file into one decoded slice."""

    def decode(self, ref: SliceRef) -> DecodedSlice:
        """Decode *ref* completely or raise a :class:`SliceError`.

        Implementations must be safe to call concurrently from several
        workers and must not share mutable state between calls.
        """
        ...


@runtime_checkable
class VolumeConsumerProtocol(Protocol):
    """The rendering side that receives the finished volume."""

    def load_volume(
        self,
        buffer: np.ndarray,
        width: int,
        height: int,
        depth: int,
    ) -> None:
        """Accept a read-only flat sample buffer and its 3-D extent.

        Parameters
        ----------
        buffer:
            C-order samples of a ``(width, height, depth)`` volume.
        width, height, depth:
            Extent of the volume along each axis.
        """
        ...
