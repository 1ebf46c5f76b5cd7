"""End-to-end volume assembly pipeline.

Runs the stages in a fixed order and tracks where a run is::

    idle -> discovering -> decoding -> assembling -> ready
                     \\            \\             \\-> failed(kind)

``ready`` and ``failed`` are terminal for a run; calling :meth:`run` again
starts over from ``idle``.  A failed run never exposes a partial buffer.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from volume_assembly.assembly.assembler import assemble_volume
from volume_assembly.domain.events import (
    PIPELINE_FAILED,
    PIPELINE_STATE_CHANGED,
    SLICES_DISCOVERED,
    VOLUME_ASSEMBLED,
    EventBus,
)
from volume_assembly.domain.models import PipelineConfig, PipelineState, VolumeBuffer
from volume_assembly.domain.protocols import (
    SliceDecoderProtocol,
    VolumeConsumerProtocol,
)
from volume_assembly.ingestion.coordinator import decode_all
from volume_assembly.ingestion.decoder import DicomSliceDecoder
from volume_assembly.ingestion.locator import locate_slices
from volume_assembly.instrumentation.timing import StageTimer

logger = logging.getLogger(__name__)


class VolumePipeline:
    """Locate, decode and assemble one slice series.

    Parameters
    ----------
    config:
        Pipeline settings; defaults to :class:`PipelineConfig` defaults.
    decoder:
        Slice decoder; defaults to a :class:`DicomSliceDecoder` for
        ``config.dtype``.
    event_bus:
        Optional bus receiving state changes and stage results.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        decoder: SliceDecoderProtocol | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.decoder = decoder or DicomSliceDecoder(self.config.dtype)
        self.event_bus = event_bus
        self.timer = StageTimer(enabled=self.config.timing_enabled)
        self._state = PipelineState.IDLE
        self._result: VolumeBuffer | None = None
        self._failure_kind: str | None = None

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def result(self) -> VolumeBuffer | None:
        """The assembled buffer, only once the pipeline is ``ready``."""
        return self._result if self._state is PipelineState.READY else None

    @property
    def failure_kind(self) -> str | None:
        """Exception class name of the last failure, if the run failed."""
        return self._failure_kind

    # -- public API --------------------------------------------------------

    def run(self, directory: str | Path) -> VolumeBuffer:
        """Assemble the series in *directory* into a :class:`VolumeBuffer`.

        Raises
        ------
        VolumeAssemblyError
            Any discovery, decode or assembly failure; the pipeline is left in
            the ``failed`` state with no result.
        """
        directory = Path(directory)
        self._reset()
        try:
            with self.timer.stage("discover"):
                self._transition(PipelineState.DISCOVERING)
                refs = locate_slices(
                    directory,
                    pattern=self.config.pattern,
                    require_dicom_preamble=self.config.require_dicom_preamble,
                    on_unclassified=self.config.on_unclassified,
                )
            self._publish(SLICES_DISCOVERED, {"count": len(refs), "directory": str(directory)})

            with self.timer.stage("decode"):
                self._transition(PipelineState.DECODING)
                slices = decode_all(
                    refs,
                    self.decoder,
                    workers=self.config.workers,
                    executor=self.config.executor,
                )

            with self.timer.stage("assemble"):
                self._transition(PipelineState.ASSEMBLING)
                buffer = assemble_volume(slices, source=str(directory))
            del slices
        except Exception as exc:
            self._fail(exc)
            raise

        self._result = buffer
        self._transition(PipelineState.READY)
        self._publish(
            VOLUME_ASSEMBLED,
            {"shape": buffer.shape, "dtype": buffer.dtype.name},
        )
        if self.timer.enabled:
            logger.info("Pipeline finished in %.1f ms", self.timer.total_ms)
        return buffer

    def hand_off(self, consumer: VolumeConsumerProtocol) -> None:
        """Pass the finished volume to a rendering *consumer*.

        Raises
        ------
        RuntimeError
            If the pipeline is not ``ready``.
        """
        if self.result is None:
            raise RuntimeError(
                f"No volume to hand off; pipeline is {self._state.value}"
            )
        consumer.load_volume(*self.result.render_payload())

    # -- internal ----------------------------------------------------------

    def _reset(self) -> None:
        self._result = None
        self._failure_kind = None
        self.timer.reset()
        self._transition(PipelineState.IDLE)

    def _transition(self, state: PipelineState) -> None:
        previous = self._state
        self._state = state
        logger.debug("Pipeline %s -> %s", previous.value, state.value)
        self._publish(
            PIPELINE_STATE_CHANGED,
            {"state": state.value, "previous": previous.value},
        )

    def _fail(self, exc: BaseException) -> None:
        self._result = None
        self._failure_kind = type(exc).__name__
        logger.error("Pipeline failed during %s: %s", self._state.value, exc)
        failed_during = self._state.value
        self._transition(PipelineState.FAILED)
        self._publish(
            PIPELINE_FAILED,
            {"kind": self._failure_kind, "message": str(exc), "stage": failed_during},
        )

    def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event_type, payload)


def load_volume(
    directory: str | Path,
    config: PipelineConfig | None = None,
    **overrides: Any,
) -> VolumeBuffer:
    """Assemble the series in *directory* in one call.

    Parameters
    ----------
    directory:
        Series directory.
    config:
        Base settings; when omitted they come from
        :func:`volume_assembly.config.get_pipeline_config`.
    **overrides:
        Individual :class:`PipelineConfig` fields, e.g. ``workers=4``.
    """
    if config is None:
        from volume_assembly.config.settings import get_pipeline_config

        config = get_pipeline_config()
    if overrides:
        config = replace(config, **overrides)
    return VolumePipeline(config).run(directory)
