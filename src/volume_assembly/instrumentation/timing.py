"""Wall-clock timing of pipeline stages.

:class:`StageTimer` wraps a stage in a context manager that measures it with
``time.perf_counter`` and logs the result.  The duration is recorded even when
the stage raises, and the exception propagates untouched: timing never
changes what a stage returns, the order it returns it in, or how it fails.
"""
from __future__ import annotations

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class StageTimer:
    """Collect per-stage durations in milliseconds.

    Example
    -------
    >>> timer = StageTimer()
    >>> with timer.stage("decode"):
    ...     pass
    >>> "decode" in timer.durations_ms
    True
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.durations_ms: dict[str, float] = {}

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block under *name*."""
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - t0) * 1000.0
            self.durations_ms[name] = round(elapsed, 3)
            logger.info("%s took %.1f ms", name, elapsed)

    @property
    def total_ms(self) -> float:
        return round(sum(self.durations_ms.values()), 3)

    def reset(self) -> None:
        self.durations_ms.clear()


def timed(stage: str, timer: StageTimer | None = None) -> Callable[[F], F]:
    """Decorate a function so each call is timed as *stage*.

    When *timer* is omitted a private :class:`StageTimer` is used and the
    duration is only logged.
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with (timer or StageTimer()).stage(stage):
                return func(*args, **kwargs)
        return wrapper  # type: ignore[return-value]
    return decorator
