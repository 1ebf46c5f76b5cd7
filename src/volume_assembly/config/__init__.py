"""Configuration sub-package.

Provides settings loading, typed pipeline configuration, and host resource
detection.

Quick usage::

    from volume_assembly.config import get_pipeline_config

    cfg = get_pipeline_config()
    print(cfg.dtype, cfg.workers)
"""

from __future__ import annotations

from volume_assembly.config.environment import (
    default_worker_count,
    detect_cpu_count,
    resolve_dtype,
)
from volume_assembly.config.settings import (
    get_pipeline_config,
    get_typed_config,
)

__all__ = [
    "default_worker_count",
    "detect_cpu_count",
    "get_pipeline_config",
    "get_typed_config",
    "resolve_dtype",
]
