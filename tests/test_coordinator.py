"""Tests for the parallel, order-preserving decode coordinator."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import numpy as np
import numpy.testing as npt
import pytest

from volume_assembly.domain.errors import (
    ConversionError,
    DecodeError,
    UnsupportedEncodingError,
)
from volume_assembly.domain.models import DecodedSlice, SliceRef
from volume_assembly.domain.protocols import SliceDecoderProtocol
from volume_assembly.ingestion.coordinator import decode_all
from volume_assembly.ingestion.decoder import DicomSliceDecoder
from volume_assembly.ingestion.locator import locate_slices


def _refs(n: int) -> list[SliceRef]:
    return [SliceRef(index=i, path=Path(f"CT{i + 1:06d}")) for i in range(n)]


class FakeDecoder:
    """Decoder stub with per-slice delays and an optional failing slice."""

    def __init__(self, delays=None, fail_at=None, exc_type=DecodeError):
        self.delays = delays or {}
        self.fail_at = fail_at
        self.exc_type = exc_type
        self.calls: list[int] = []
        self.finished: list[int] = []
        self._lock = threading.Lock()

    def decode(self, ref: SliceRef) -> DecodedSlice:
        with self._lock:
            self.calls.append(ref.index)
        time.sleep(self.delays.get(ref.index, 0.0))
        if ref.index == self.fail_at:
            raise self.exc_type(f"bad slice {ref.name}", ref.path, ref.index)
        with self._lock:
            self.finished.append(ref.index)
        return DecodedSlice(
            index=ref.index,
            name=ref.name,
            pixels=np.full((2, 2), ref.index, dtype=np.float16),
        )


# =====================================================================
# Ordering
# =====================================================================


class TestOrdering:
    """Output order equals input order whatever the completion order."""

    def test_reverse_completion_order(self):
        n = 8
        decoder = FakeDecoder(delays={i: 0.02 * (n - i) for i in range(n)})
        result = decode_all(_refs(n), decoder, workers=n)
        assert [s.index for s in result] == list(range(n))
        assert decoder.finished != sorted(decoder.finished)

    def test_random_delays(self):
        rng = np.random.default_rng(7)
        n = 24
        delays = {i: float(d) for i, d in enumerate(rng.uniform(0, 0.02, n))}
        result = decode_all(_refs(n), FakeDecoder(delays=delays), workers=6)
        for position, item in enumerate(result):
            assert item.index == position
            npt.assert_array_equal(item.pixels, position)

    def test_single_worker(self):
        result = decode_all(_refs(5), FakeDecoder(), workers=1)
        assert [s.name for s in result] == [f"CT{i:06d}" for i in range(1, 6)]

    def test_default_workers(self):
        result = decode_all(_refs(3), FakeDecoder())
        assert len(result) == 3

    def test_empty_input(self):
        assert decode_all([], FakeDecoder()) == []

    def test_fake_decoder_satisfies_protocol(self):
        assert isinstance(FakeDecoder(), SliceDecoderProtocol)
        assert isinstance(DicomSliceDecoder(), SliceDecoderProtocol)

    def test_unknown_executor(self):
        with pytest.raises(ValueError, match="executor"):
            decode_all(_refs(2), FakeDecoder(), executor="gpu")


# =====================================================================
# Fail-fast
# =====================================================================


class TestFailFast:
    """One failed slice fails the whole batch with that slice's error."""

    @pytest.mark.parametrize(
        "exc_type", [DecodeError, UnsupportedEncodingError, ConversionError],
    )
    def test_error_propagates_unchanged(self, exc_type):
        with pytest.raises(exc_type) as excinfo:
            decode_all(_refs(6), FakeDecoder(fail_at=3, exc_type=exc_type), workers=3)
        assert excinfo.value.index == 3
        assert excinfo.value.path == Path("CT000004")

    def test_pending_tasks_cancelled(self):
        n = 20
        decoder = FakeDecoder(delays={i: 0.05 for i in range(1, n)}, fail_at=0)
        with pytest.raises(DecodeError):
            decode_all(_refs(n), decoder, workers=1)
        assert len(decoder.calls) < n

    def test_running_siblings_allowed_to_finish(self):
        decoder = FakeDecoder(delays={1: 0.1}, fail_at=0)
        with pytest.raises(DecodeError):
            decode_all(_refs(2), decoder, workers=2)
        # The pool is joined before the error surfaces.
        assert 1 in decoder.finished

    def test_unexpected_exception_wrapped(self):
        with pytest.raises(DecodeError, match="Unexpected failure") as excinfo:
            decode_all(_refs(3), FakeDecoder(fail_at=1, exc_type=_KeyErrorLike), workers=2)
        assert excinfo.value.index == 1
        assert isinstance(excinfo.value.__cause__, KeyError)


class _KeyErrorLike(KeyError):
    def __init__(self, message, path=None, index=None):
        super().__init__(message)


# =====================================================================
# Real files
# =====================================================================


class TestWithDicomFiles:
    """Decode real slice files through both pool kinds."""

    @pytest.mark.parametrize("executor", ["thread", "process"])
    def test_decodes_series_in_order(self, write_slice, tmp_path, executor):
        for i in range(6):
            write_slice(f"CT{i + 1:06d}", float(i * 10))
        refs = locate_slices(tmp_path / "series")
        result = decode_all(
            refs, DicomSliceDecoder("float32"), workers=2, executor=executor,
        )
        assert [float(s.pixels[0, 0]) for s in result] == [0, 10, 20, 30, 40, 50]

    def test_corrupt_file_fails_batch(self, write_slice, tmp_path):
        for i in range(4):
            write_slice(f"CT{i + 1:06d}", 1.0)
        bad = tmp_path / "series" / "CT000003"
        bad.write_bytes(b"\x00" * 128 + b"DICM" + b"\xff" * 32)
        refs = locate_slices(tmp_path / "series")
        with pytest.raises(DecodeError) as excinfo:
            decode_all(refs, DicomSliceDecoder(), workers=2)
        assert excinfo.value.path == bad
        assert excinfo.value.index == 2
