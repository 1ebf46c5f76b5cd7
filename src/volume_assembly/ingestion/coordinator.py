"""Parallel, order-preserving slice decoding.

Every slice decodes independently, so the work is spread over a bounded
``concurrent.futures`` pool.  Results are scattered into a pre-sized list by
slice index: whatever order the workers finish in, ``result[i]`` is always the
slice discovered at position ``i``.  A swapped pair here would silently corrupt
the depth axis of the volume, so the alignment is checked again after the
pool has been joined.

Failure policy is fail-fast: the first failed slice aborts the whole batch.
Tasks that have not started are cancelled, running ones are left to finish
and their results are dropped, and the original error is re-raised.
"""
from __future__ import annotations

import logging
from concurrent.futures import (
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from typing import Sequence

from volume_assembly.config.environment import default_worker_count
from volume_assembly.domain.errors import DecodeError, SliceError
from volume_assembly.domain.models import EXECUTORS, DecodedSlice, SliceRef
from volume_assembly.domain.protocols import SliceDecoderProtocol

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def decode_all(
    refs: Sequence[SliceRef],
    decoder: SliceDecoderProtocol,
    *,
    workers: int | None = None,
    executor: str = "thread",
) -> list[DecodedSlice]:
    """Decode every slice in *refs* concurrently, preserving input order.

    Parameters
    ----------
    refs:
        Located slices in discovery order.
    decoder:
        Object with a ``decode(ref)`` method.  Must be picklable when
        *executor* is ``"process"``.
    workers:
        Pool size; ``None`` selects one worker per CPU.  Always capped at
        ``len(refs)``.
    executor:
        ``"thread"`` (default) or ``"process"``.

    Returns
    -------
    list[DecodedSlice]
        Decoded slices, index-aligned with *refs*.

    Raises
    ------
    SliceError
        The first decode failure observed (a :class:`DecodeError`,
        :class:`UnsupportedEncodingError` or :class:`ConversionError`).
        Unexpected exceptions from *decoder* are wrapped in
        :class:`DecodeError`.
    ValueError
        If *executor* is unknown.
    """
    if executor not in EXECUTORS:
        raise ValueError(
            f"Unknown executor '{executor}'. Choose from: {list(EXECUTORS)}"
        )
    if not refs:
        return []

    n_workers = default_worker_count(len(refs), workers)
    results: list[DecodedSlice | None] = [None] * len(refs)
    logger.info(
        "Decoding %d slices with %d %s worker(s)", len(refs), n_workers, executor
    )

    with _make_executor(executor, n_workers) as pool:
        futures: dict[Future[DecodedSlice], int] = {
            pool.submit(decoder.decode, ref): position
            for position, ref in enumerate(refs)
        }
        try:
            for future in as_completed(futures):
                position = futures[future]
                results[position] = _result_or_raise(future, refs[position])
        except SliceError:
            cancelled = sum(f.cancel() for f in futures)
            logger.debug("Decode failed; cancelled %d pending task(s)", cancelled)
            raise

    return _check_alignment(refs, results)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _make_executor(kind: str, workers: int) -> Executor:
    if kind == "process":
        return ProcessPoolExecutor(max_workers=workers)
    return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="decode")


def _result_or_raise(future: Future[DecodedSlice], ref: SliceRef) -> DecodedSlice:
    try:
        return future.result()
    except SliceError:
        raise
    except Exception as exc:
        raise DecodeError(
            f"Unexpected failure decoding {ref.path}: {exc}", ref.path, ref.index
        ) from exc


def _check_alignment(
    refs: Sequence[SliceRef],
    results: list[DecodedSlice | None],
) -> list[DecodedSlice]:
    ordered: list[DecodedSlice] = []
    for ref, decoded in zip(refs, results):
        if decoded is None:
            raise RuntimeError(f"Slice {ref.index} ({ref.name}) was never decoded")
        if decoded.index != ref.index:
            raise RuntimeError(
                f"Decoded slice {decoded.index} landed in slot of slice {ref.index}"
            )
        ordered.append(decoded)
    return ordered
