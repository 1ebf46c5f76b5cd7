"""Settings module -- single entry point for application configuration.

:func:`get_typed_config` loads ``config/default.yaml``, overlays the file
named by ``--config`` or ``VA_CONFIG`` when given, and finally applies any
``VA_`` prefixed environment variable overrides.
"""

from __future__ import annotations

import os
from pathlib import Path

from volume_assembly.domain.models import AppConfig, PipelineConfig

# Project root is three levels up from ``src/volume_assembly/config/``.
_PROJECT_ROOT = Path(__file__).resolve().parents[3]

DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "config" / "default.yaml"
ENV_PREFIX = "VA_"
OVERLAY_ENV_VAR = "VA_CONFIG"


def get_typed_config(overlay_path: str | Path | None = None) -> AppConfig:
    """Return the :class:`AppConfig` wrapper for typed access.

    Resolution order:

    1. ``config/default.yaml``
    2. *overlay_path*, or the file named by ``VA_CONFIG``
    3. Environment variables with ``VA_`` prefix

    Parameters
    ----------
    overlay_path:
        Explicit overlay file; falls back to ``$VA_CONFIG``.

    Raises
    ------
    FileNotFoundError
        If an overlay is named but does not exist.
    """
    if overlay_path is None:
        overlay_path = os.environ.get(OVERLAY_ENV_VAR) or None
    return AppConfig.load(
        default_path=DEFAULT_CONFIG_PATH,
        overlay_path=overlay_path,
        env_prefix=ENV_PREFIX,
        skip_env=(OVERLAY_ENV_VAR,),
    )


def get_pipeline_config(overlay_path: str | Path | None = None) -> PipelineConfig:
    """Return the validated :class:`PipelineConfig` for the current environment."""
    return PipelineConfig.from_app_config(get_typed_config(overlay_path))
