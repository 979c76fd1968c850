"""
pawn_config -- single public entrypoint for branch business settings.

Responsibility:
    Provides ``get_active_config()``, the runtime way to obtain settings,
    and ``get_active_policy()`` which returns them already translated into
    the kernel's ``PawnPolicy``.  ``load_config(path)`` is exposed for
    tooling and tests that need an explicit file.

Architecture position:
    Configuration -- sits above ``pawn_kernel``.  The kernel MUST NEVER
    import from ``pawn_config``; ``pawn_config.bridges`` translates
    settings into kernel inputs.

Invariants enforced:
    - The bundled defaults (``defaults/pawnsys.yaml``) are used unless the
      ``PAWN_CONFIG_PATH`` environment variable names another file.
    - The active configuration is parsed once and cached until
      ``reset_active_config()``.

Failure modes:
    - ``FileNotFoundError`` -- PAWN_CONFIG_PATH points nowhere.
    - ``KeyError`` / ``ValueError`` -- missing or malformed settings.
    - ``InvalidLoanTermsError`` -- interest tiers not non-decreasing
      (raised while building the policy).

Audit relevance:
    Every load emits a ``PAWN_CONFIG_TRACE`` log entry with the source
    path, version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pawn_config.bridges import build_policy
from pawn_config.loader import compute_checksum, load_config
from pawn_config.schema import PawnConfig
from pawn_kernel.domain.policy import PawnPolicy

_logger = logging.getLogger("pawn_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "pawnsys.yaml"
CONFIG_PATH_ENV = "PAWN_CONFIG_PATH"

_active_config: PawnConfig | None = None


def get_active_config() -> PawnConfig:
    """Return the active settings, loading them on first use."""
    global _active_config
    if _active_config is None:
        path = Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
        _active_config = load_config(path)
        _logger.info(
            "PAWN_CONFIG_TRACE",
            extra={
                "trace_type": "PAWN_CONFIG_TRACE",
                "source_path": str(path),
                "config_version": _active_config.version,
                "checksum": _active_config.checksum,
            },
        )
    return _active_config


def get_active_policy() -> PawnPolicy:
    return build_policy(get_active_config())


def reset_active_config() -> None:
    """Forget the cached settings.  Used by tests."""
    global _active_config
    _active_config = None


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "PawnConfig",
    "build_policy",
    "compute_checksum",
    "get_active_config",
    "get_active_policy",
    "load_config",
    "reset_active_config",
]
