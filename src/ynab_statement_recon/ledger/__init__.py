"""External ledger API client."""

from .client import LedgerClient

__all__ = ["LedgerClient"]
