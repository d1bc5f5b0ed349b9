"""Custom exceptions for the reconciliation application."""

from typing import Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    code = "RECONCILIATION_ERROR"


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    code = "CONFIG_ERROR"


class ValidationError(ReconciliationError):
    """Request shape or range is invalid. Raised before any I/O."""

    code = "VALIDATION_ERROR"


class StoreError(ReconciliationError):
    """Local statement store failure."""

    code = "STORE_ERROR"


class LedgerError(ReconciliationError):
    """Base exception for external ledger failures."""

    code = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.context = context


class AuthenticationError(LedgerError):
    """Ledger credential missing or rejected."""

    code = "AUTH_FAILED"


class NotFoundError(LedgerError):
    """Budget, account or transaction absent on the ledger."""

    code = "NOT_FOUND"


class RateLimitError(LedgerError):
    """Ledger rate limit hit. Back off before retrying."""

    code = "RATE_LIMIT"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 429,
        context: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code=status_code, context=context)
        self.retry_after = retry_after


class DuplicateSubmission(LedgerError):
    """The ledger already holds a transaction with this import id.

    Not a failure: callers treat it as "already exists, skip".
    """

    code = "DUPLICATE"

    def __init__(
        self,
        message: str,
        import_id: Optional[str] = None,
        status_code: Optional[int] = 409,
        context: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, context=context)
        self.import_id = import_id


class LedgerAPIError(LedgerError):
    """Any other ledger failure, wrapped with context."""

    pass
