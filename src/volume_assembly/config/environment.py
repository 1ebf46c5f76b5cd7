"""Environment detection utilities.

Resolves the worker-pool size from the host's CPU count and maps dtype names
from configuration onto numpy dtypes.
"""

from __future__ import annotations

import os

import numpy as np

from volume_assembly.domain.models import SUPPORTED_DTYPES


def detect_cpu_count() -> int:
    """Return the number of CPUs usable by this process (at least 1).

    Honours the scheduler affinity mask where the platform exposes one, so a
    container limited to a few cores does not oversubscribe them.
    """
    if hasattr(os, "sched_getaffinity"):
        try:
            return max(1, len(os.sched_getaffinity(0)))
        except OSError:
            pass
    return max(1, os.cpu_count() or 1)


def default_worker_count(n_tasks: int, requested: int | None = None) -> int:
    """Choose the decode pool size.

    Parameters
    ----------
    n_tasks:
        Number of slices to decode.
    requested:
        Explicit worker count, or ``None`` for one worker per CPU.

    Returns
    -------
    int
        Pool size, never larger than *n_tasks* and never below 1.
    """
    workers = requested if requested is not None else detect_cpu_count()
    return max(1, min(workers, n_tasks))


def resolve_dtype(name: str | np.dtype) -> np.dtype:
    """Map a configured dtype name onto a supported floating numpy dtype.

    Raises
    ------
    ValueError
        If *name* is not one of ``"float16"``, ``"float32"`` or ``"float64"``.
    """
    dtype = np.dtype(name)
    if dtype.name not in SUPPORTED_DTYPES:
        raise ValueError(
            f"Unsupported volume dtype '{dtype.name}'. "
            f"Choose from: {list(SUPPORTED_DTYPES)}"
        )
    return dtype
