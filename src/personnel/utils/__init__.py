"""
Utility helpers shared across personnel packages.
"""

from .logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    redact_params,
    set_correlation_id,
    time_call,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "redact_params",
    "set_correlation_id",
    "time_call",
]
