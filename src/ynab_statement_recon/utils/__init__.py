"""Utility modules."""

from .currency import build_idempotency_key, to_major_units, to_minor_units
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DuplicateSubmission,
    LedgerAPIError,
    LedgerError,
    NotFoundError,
    RateLimitError,
    ReconciliationError,
    StoreError,
    ValidationError,
)
from .logging_config import configure_logging, setup_logging

__all__ = [
    "ReconciliationError",
    "ConfigurationError",
    "ValidationError",
    "StoreError",
    "LedgerError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "DuplicateSubmission",
    "LedgerAPIError",
    "build_idempotency_key",
    "to_major_units",
    "to_minor_units",
    "configure_logging",
    "setup_logging",
]
