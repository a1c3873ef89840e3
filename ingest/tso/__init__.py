"""
Operator registry: look up the scrape configuration for a TSO.

Usage:
    config = get_tso("tepco")
    sources = config.discover(ScrapeType.LATEST, now)
"""

from __future__ import annotations

import logging

from ..const import TsoName
from .base import SourceFile, SourceFormat, TsoConfig

logger = logging.getLogger(__name__)

# Registry of operator configs (populated lazily below)
_CONFIGS: dict[TsoName, TsoConfig] = {}

# All supported operator IDs
SUPPORTED_TSOS = [t.value for t in TsoName]


def register_tso(config: TsoConfig):
    """Register the scrape configuration for an operator."""
    _CONFIGS[TsoName(config.tso)] = config


def _load_configs():
    """Import operator modules on first use."""
    if _CONFIGS:
        return

    from . import chubu, chugoku, hepco, hokuden, kepco, kyuden, okinawa, tepco, tohoku, yonden

    for module in (hepco, tohoku, tepco, chubu, hokuden, kepco, chugoku, yonden, kyuden, okinawa):
        register_tso(module.CONFIG)


def get_tso(name) -> TsoConfig:
    """Return the config for operator `name`.

    Raises:
        ValueError: If `name` is not a supported operator.
    """
    _load_configs()
    if isinstance(name, str) and not isinstance(name, TsoName):
        name = name.lower()
    try:
        return _CONFIGS[TsoName(name)]
    except ValueError:
        raise ValueError(f"Unknown TSO: '{name}'. Supported: {SUPPORTED_TSOS}") from None


def list_tsos() -> list[TsoConfig]:
    """Return every registered config in operator order."""
    _load_configs()
    return [_CONFIGS[t] for t in TsoName]


__all__ = ["SUPPORTED_TSOS", "SourceFile", "SourceFormat", "TsoConfig", "get_tso", "list_tsos", "register_tso"]
