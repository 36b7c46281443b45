"""
inventory_config -- single entrypoint for ledger configuration.

``get_settings()`` is the only way the runtime obtains configuration.  The
kernel never imports this package; InventoryLedger translates settings into
plain constructor arguments for kernel components.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from inventory_config.loader import compute_checksum, load_settings
from inventory_config.settings import LedgerSettings

_logger = logging.getLogger("inventory_kernel.config")

__all__ = ["LedgerSettings", "get_settings", "load_settings", "compute_checksum"]


def get_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    settings = load_settings(path, environ)
    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_path": str(path) if path is not None else None,
            "checksum": compute_checksum(settings),
            "lock_timeout_ms": settings.lock_timeout_ms,
            "max_retries": settings.max_retries,
        },
    )
    return settings
