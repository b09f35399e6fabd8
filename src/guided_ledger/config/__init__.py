"""Configuration module for the guided ledger engine."""

from guided_ledger.config.logging import (
    bind_ledger_context,
    clear_ledger_context,
    configure_logging,
    get_logger,
)
from guided_ledger.config.settings import FlatSettings, get_settings

__all__ = [
    "FlatSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "bind_ledger_context",
    "clear_ledger_context",
]
