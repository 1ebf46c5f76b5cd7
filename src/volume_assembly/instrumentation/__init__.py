"""Cross-cutting instrumentation for pipeline stages."""
from __future__ import annotations

from volume_assembly.instrumentation.timing import StageTimer, timed

__all__ = ["StageTimer", "timed"]
