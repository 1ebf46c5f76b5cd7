"""End-to-end tests for the volume assembly pipeline."""

from __future__ import annotations

from dataclasses import replace

import numpy as np
import numpy.testing as npt
import pytest

from volume_assembly import load_volume
from volume_assembly.data.synthetic import create_phantom, write_series
from volume_assembly.domain.errors import (
    DecodeError,
    DiscoveryError,
    NotFoundError,
    ShapeMismatchError,
)
from volume_assembly.domain.events import (
    PIPELINE_FAILED,
    PIPELINE_STATE_CHANGED,
    SLICES_DISCOVERED,
    VOLUME_ASSEMBLED,
    EventBus,
)
from volume_assembly.domain.models import PipelineConfig, PipelineState
from volume_assembly.domain.protocols import VolumeConsumerProtocol
from volume_assembly.pipeline import VolumePipeline

SCENARIO_VALUES = (100.0, -200.0, 300.0)


class RecordingConsumer:
    """Rendering consumer stand-in that keeps what it was given."""

    def __init__(self):
        self.received = None

    def load_volume(self, buffer, width, height, depth):
        self.received = (buffer, width, height, depth)


def _record_states(bus: EventBus) -> list[str]:
    states: list[str] = []
    bus.subscribe(PIPELINE_STATE_CHANGED, lambda e: states.append(e.payload["state"]))
    return states


# =====================================================================
# Successful runs
# =====================================================================


class TestAssembly:
    """The three-slice scenario and other successful runs."""

    def test_scenario_shape_and_values(self, scenario_dir, serial_config):
        buffer = VolumePipeline(serial_config).run(scenario_dir)
        assert buffer.shape == (4, 4, 3)
        assert buffer.data.size == 48
        volume = buffer.as_volume()
        for z, value in enumerate(SCENARIO_VALUES):
            npt.assert_array_equal(volume[:, :, z], value)

    def test_scenario_flat_layout(self, scenario_dir, serial_config):
        buffer = VolumePipeline(serial_config).run(scenario_dir)
        npt.assert_array_equal(buffer.data[:3], [100.0, -200.0, 300.0])
        npt.assert_array_equal(buffer.data[-3:], [100.0, -200.0, 300.0])

    def test_default_dtype_is_float16(self, scenario_dir):
        buffer = VolumePipeline(PipelineConfig(workers=2)).run(scenario_dir)
        assert buffer.dtype == np.float16

    def test_depth_follows_name_order(self, write_slice, tmp_path, serial_config):
        for name, value in (("CT000003", 3.0), ("CT000001", 1.0), ("CT000002", 2.0)):
            write_slice(name, value)
        buffer = VolumePipeline(serial_config).run(tmp_path / "series")
        npt.assert_array_equal(buffer.as_volume()[0, 0, :], [1.0, 2.0, 3.0])

    def test_repeat_runs_are_byte_identical(self, scenario_dir):
        first = VolumePipeline(PipelineConfig(workers=1)).run(scenario_dir)
        second = VolumePipeline(PipelineConfig(workers=4)).run(scenario_dir)
        assert first.tobytes() == second.tobytes()

    def test_process_executor(self, scenario_dir):
        config = PipelineConfig(workers=2, executor="process", dtype="float32")
        buffer = VolumePipeline(config).run(scenario_dir)
        npt.assert_array_equal(buffer.as_volume()[:, :, 1], -200.0)

    def test_phantom_round_trip(self, tmp_path):
        volume_hu = create_phantom(size=16, n_slices=6, seed=3, noise_hu=0.0)
        write_series(tmp_path / "phantom", volume_hu)
        config = PipelineConfig(workers=3, dtype="float32")
        buffer = VolumePipeline(config).run(tmp_path / "phantom")
        assert buffer.shape == volume_hu.shape
        npt.assert_allclose(buffer.as_volume(), np.round(volume_hu), atol=1.0)

    def test_state_ready_and_result(self, scenario_dir, serial_config):
        pipeline = VolumePipeline(serial_config)
        assert pipeline.state is PipelineState.IDLE
        assert pipeline.result is None
        buffer = pipeline.run(scenario_dir)
        assert pipeline.state is PipelineState.READY
        assert pipeline.result is buffer
        assert pipeline.failure_kind is None


# =====================================================================
# Failures
# =====================================================================


class TestFailures:
    """Every failure is fatal and leaves no result behind."""

    def test_corrupt_slice_fails_run(self, scenario_dir, serial_config):
        bad = scenario_dir / "CT000002"
        bad.write_bytes(b"\x00" * 128 + b"DICM" + b"\xff" * 16)
        pipeline = VolumePipeline(serial_config)
        with pytest.raises(DecodeError) as excinfo:
            pipeline.run(scenario_dir)
        assert excinfo.value.path == bad
        assert pipeline.state is PipelineState.FAILED
        assert pipeline.result is None
        assert pipeline.failure_kind == "DecodeError"

    def test_shape_mismatch_across_files(self, scenario_dir, write_slice, serial_config):
        write_slice("CT000004", 1.0, shape=(4, 5))
        pipeline = VolumePipeline(serial_config)
        with pytest.raises(ShapeMismatchError) as excinfo:
            pipeline.run(scenario_dir)
        assert excinfo.value.index == 3
        assert pipeline.failure_kind == "ShapeMismatchError"

    def test_missing_directory(self, tmp_path, serial_config):
        pipeline = VolumePipeline(serial_config)
        with pytest.raises(NotFoundError):
            pipeline.run(tmp_path / "missing")
        assert pipeline.state is PipelineState.FAILED

    def test_empty_directory(self, tmp_path, serial_config):
        with pytest.raises(DiscoveryError):
            VolumePipeline(serial_config).run(tmp_path)

    def test_strict_policy_rejects_stray_file(self, scenario_dir):
        (scenario_dir / "notes.txt").write_text("x")
        config = PipelineConfig(workers=1, on_unclassified="error")
        with pytest.raises(DiscoveryError):
            VolumePipeline(config).run(scenario_dir)

    def test_rerun_after_failure(self, scenario_dir, serial_config):
        pipeline = VolumePipeline(serial_config)
        bad = scenario_dir / "CT000002"
        original = bad.read_bytes()
        bad.write_bytes(b"\x00" * 128 + b"DICM")
        with pytest.raises(DecodeError):
            pipeline.run(scenario_dir)
        bad.write_bytes(original)
        buffer = pipeline.run(scenario_dir)
        assert pipeline.state is PipelineState.READY
        assert pipeline.failure_kind is None
        assert buffer.shape == (4, 4, 3)

    def test_previous_result_cleared_on_failure(self, scenario_dir, tmp_path, serial_config):
        pipeline = VolumePipeline(serial_config)
        pipeline.run(scenario_dir)
        with pytest.raises(NotFoundError):
            pipeline.run(tmp_path / "missing")
        assert pipeline.result is None


# =====================================================================
# Events
# =====================================================================


class TestEvents:
    """State transitions and stage results published on the event bus."""

    def test_successful_state_sequence(self, scenario_dir, serial_config):
        bus = EventBus()
        states = _record_states(bus)
        VolumePipeline(serial_config, event_bus=bus).run(scenario_dir)
        assert states == ["idle", "discovering", "decoding", "assembling", "ready"]

    def test_failed_state_sequence(self, tmp_path, serial_config):
        bus = EventBus()
        states = _record_states(bus)
        failures = []
        bus.subscribe(PIPELINE_FAILED, failures.append)
        with pytest.raises(NotFoundError):
            VolumePipeline(serial_config, event_bus=bus).run(tmp_path / "missing")
        assert states == ["idle", "discovering", "failed"]
        assert failures[0].payload["kind"] == "NotFoundError"
        assert failures[0].payload["stage"] == "discovering"

    def test_stage_results(self, scenario_dir, serial_config):
        bus = EventBus()
        discovered, assembled = [], []
        bus.subscribe(SLICES_DISCOVERED, discovered.append)
        bus.subscribe(VOLUME_ASSEMBLED, assembled.append)
        VolumePipeline(serial_config, event_bus=bus).run(scenario_dir)
        assert discovered[0].payload["count"] == 3
        assert assembled[0].payload["shape"] == (4, 4, 3)
        assert assembled[0].payload["dtype"] == "float16"


# =====================================================================
# Hand-off, timing and convenience entry point
# =====================================================================


class TestHandOff:
    """Passing the finished buffer to a rendering consumer."""

    def test_consumer_receives_buffer_and_dimensions(self, scenario_dir, serial_config):
        pipeline = VolumePipeline(serial_config)
        buffer = pipeline.run(scenario_dir)
        consumer = RecordingConsumer()
        assert isinstance(consumer, VolumeConsumerProtocol)
        pipeline.hand_off(consumer)
        data, width, height, depth = consumer.received
        assert data is buffer.data
        assert (width, height, depth) == (4, 4, 3)

    def test_hand_off_before_ready(self, serial_config):
        with pytest.raises(RuntimeError, match="idle"):
            VolumePipeline(serial_config).hand_off(RecordingConsumer())


class TestTimingAndLoadVolume:
    """Stage timings and the one-call entry point."""

    def test_stage_timings_recorded(self, scenario_dir, serial_config):
        pipeline = VolumePipeline(serial_config)
        pipeline.run(scenario_dir)
        assert set(pipeline.timer.durations_ms) == {"discover", "decode", "assemble"}
        assert all(v >= 0.0 for v in pipeline.timer.durations_ms.values())

    def test_timing_disabled(self, scenario_dir, serial_config):
        pipeline = VolumePipeline(replace(serial_config, timing_enabled=False))
        pipeline.run(scenario_dir)
        assert pipeline.timer.durations_ms == {}

    def test_timing_does_not_change_output(self, scenario_dir, serial_config):
        timed = VolumePipeline(serial_config).run(scenario_dir)
        untimed = VolumePipeline(replace(serial_config, timing_enabled=False)).run(scenario_dir)
        assert timed.tobytes() == untimed.tobytes()

    def test_load_volume_with_overrides(self, scenario_dir, serial_config):
        buffer = load_volume(scenario_dir, serial_config, dtype="float32", workers=1)
        assert buffer.dtype == np.float32
        assert buffer.shape == (4, 4, 3)

    def test_load_volume_uses_configured_defaults(self, scenario_dir, monkeypatch):
        monkeypatch.delenv("VA_CONFIG", raising=False)
        monkeypatch.setenv("VA_DECODE__DTYPE", "float64")
        buffer = load_volume(scenario_dir)
        assert buffer.dtype == np.float64
