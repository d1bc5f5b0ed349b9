"""
YNAB ledger API client.

Translates between the reconciliation models and the API's JSON wire
format and maps HTTP failures onto the ledger error taxonomy.

Amounts on the wire are integer milliunits; dates are ``YYYY-MM-DD``.
"""

from datetime import date
from typing import Any, Optional
import logging

import httpx

from ..config import LedgerConfig
from ..models.transaction import (
    ClearedStatus,
    FlagColor,
    LedgerAccount,
    LedgerBudget,
    LedgerTransaction,
    LedgerTransactionDraft,
)
from ..utils.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DuplicateSubmission,
    LedgerAPIError,
    LedgerError,
    NotFoundError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.ynab.com/v1"


class LedgerClient:
    """
    Client for the YNAB REST API.

    The transactions listing cannot be relied on to scope by account, so
    :meth:`list_transactions` always filters the response by account id
    before returning it.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the client.

        Args:
            access_token: Personal access token for the API
            base_url: API root URL
            timeout: Request timeout in seconds
            http_client: Pre-built httpx client (tests inject one with a
                mock transport); its base URL is replaced by ``base_url``

        Raises:
            ConfigurationError: If no access token is given
        """
        if not access_token:
            raise ConfigurationError("Ledger access token is required")

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        if http_client is None:
            http_client = httpx.Client(base_url=base_url, headers=headers, timeout=timeout)
        else:
            http_client.base_url = base_url
            http_client.headers.update(headers)

        self._client = http_client
        logger.debug(f"LedgerClient initialized with URL: {base_url}")

    @classmethod
    def from_config(
        cls, config: LedgerConfig, http_client: Optional[httpx.Client] = None
    ) -> "LedgerClient":
        """Build a client from the ledger section of the configuration."""
        return cls(
            access_token=config.resolve_access_token(),
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            http_client=http_client,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "LedgerClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def list_budgets(self) -> list[LedgerBudget]:
        """Return every budget visible to the token."""
        data = self._request("GET", "/budgets", context="Failed to fetch budgets")
        return [LedgerBudget(id=b["id"], name=b.get("name", "")) for b in data.get("budgets", [])]

    def list_accounts(self, budget_id: str) -> list[LedgerAccount]:
        """Return the accounts of a budget."""
        data = self._request(
            "GET",
            f"/budgets/{budget_id}/accounts",
            context=f"Failed to fetch accounts for budget {budget_id}",
        )
        return [
            LedgerAccount(
                id=a["id"],
                name=a.get("name", ""),
                type=a.get("type"),
                closed=bool(a.get("closed", False)),
                deleted=bool(a.get("deleted", False)),
            )
            for a in data.get("accounts", [])
        ]

    def list_transactions(
        self,
        budget_id: str,
        account_id: str,
        since_date: date,
        until_date: Optional[date] = None,
    ) -> list[LedgerTransaction]:
        """
        Fetch an account's transactions dated on or after ``since_date``.

        Args:
            budget_id: Ledger budget id
            account_id: Only transactions of this account are returned
            since_date: Earliest transaction date, inclusive
            until_date: Latest transaction date, inclusive (filtered
                client-side, the API has no end-date parameter)

        Returns:
            Ledger transactions in API response order
        """
        context = f"Failed to fetch transactions for budget {budget_id}"
        data = self._request(
            "GET",
            f"/budgets/{budget_id}/transactions",
            params={"since_date": since_date.isoformat()},
            context=context,
        )
        transactions = [_parse_transaction(t, context) for t in data.get("transactions", [])]

        scoped = [t for t in transactions if t.account_id == account_id]
        if len(scoped) != len(transactions):
            logger.debug(
                f"Dropped {len(transactions) - len(scoped)} ledger txn(s) "
                f"from accounts other than {account_id}"
            )

        # Guard against servers that ignore since_date
        scoped = [t for t in scoped if t.date >= since_date]
        if until_date is not None:
            scoped = [t for t in scoped if t.date <= until_date]

        logger.info(
            f"Fetched {len(scoped)} ledger txn(s) for account {account_id} "
            f"since {since_date}"
        )
        return scoped

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def create_transaction(
        self, budget_id: str, account_id: str, draft: LedgerTransactionDraft
    ) -> LedgerTransaction:
        """
        Create one transaction on the ledger.

        Raises:
            DuplicateSubmission: The import id is already known to the ledger
        """
        payload = {
            "transaction": {
                "account_id": account_id,
                "date": draft.date.isoformat(),
                "amount": draft.amount,
                "payee_name": draft.payee_name,
                "memo": draft.memo,
                "cleared": draft.cleared.value,
                "import_id": draft.import_id,
            }
        }
        try:
            data = self._request(
                "POST",
                f"/budgets/{budget_id}/transactions",
                json=payload,
                context="Failed to create transaction",
            )
        except LedgerAPIError as e:
            if e.status_code == 409:
                raise DuplicateSubmission(
                    f"Duplicate transaction: import_id {draft.import_id} already exists",
                    import_id=draft.import_id,
                    context=e.context,
                ) from e
            raise

        return _parse_transaction(data.get("transaction"), "Failed to create transaction")

    def set_flag(
        self, budget_id: str, transaction_id: str, color: Optional[FlagColor]
    ) -> LedgerTransaction:
        """Set or clear the flag color of a ledger transaction."""
        flag = color.value if isinstance(color, FlagColor) else color
        context = f"Failed to update flag for transaction {transaction_id}"
        data = self._request(
            "PATCH",
            f"/budgets/{budget_id}/transactions/{transaction_id}",
            json={"transaction": {"flag_color": flag}},
            context=context,
        )
        return _parse_transaction(data.get("transaction"), context)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        context: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send a request and return the response's ``data`` object."""
        try:
            response = self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise LedgerAPIError(f"{context}: {e}", context=context) from e

        if response.is_error:
            raise _error_from_response(response, context)

        try:
            body = response.json()
        except ValueError as e:
            raise LedgerAPIError(
                f"{context}: invalid JSON response",
                status_code=response.status_code,
                context=context,
            ) from e
        if not isinstance(body, dict) or not isinstance(body.get("data", {}), dict):
            raise LedgerAPIError(
                f"{context}: unexpected response body",
                status_code=response.status_code,
                context=context,
            )
        return body.get("data", {})


def _error_from_response(response: httpx.Response, context: str) -> LedgerError:
    """Map an error response onto the ledger error taxonomy."""
    status = response.status_code

    if status == 401:
        return AuthenticationError(
            "Unauthorized: invalid ledger access token", status_code=status, context=context
        )
    if status == 404:
        return NotFoundError(f"{context}: Not found", status_code=status, context=context)
    if status == 429:
        retry_after = _parse_retry_after(response.headers.get("Retry-After"))
        return RateLimitError(
            "Rate limit exceeded. Please try again later.",
            status_code=status,
            context=context,
            retry_after=retry_after,
        )

    detail = None
    try:
        detail = response.json().get("error", {}).get("detail")
    except (ValueError, AttributeError):
        pass
    message = detail or f"HTTP {status}"
    return LedgerAPIError(f"{context}: {message}", status_code=status, context=context)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_transaction(raw: Any, context: str) -> LedgerTransaction:
    """
    Convert a wire transaction into a LedgerTransaction.

    Raises:
        LedgerAPIError: If the transaction is absent or malformed
    """
    if not isinstance(raw, dict):
        raise LedgerAPIError(f"{context}: response has no transaction", context=context)

    try:
        cleared = ClearedStatus(raw.get("cleared") or "uncleared")
    except ValueError:
        cleared = ClearedStatus.UNCLEARED

    try:
        return LedgerTransaction(
            id=raw["id"],
            date=date.fromisoformat(raw["date"]),
            amount=int(raw["amount"]),
            account_id=raw.get("account_id"),
            payee_name=raw.get("payee_name"),
            category_name=raw.get("category_name"),
            memo=raw.get("memo"),
            cleared=cleared,
            deleted=bool(raw.get("deleted", False)),
            flag_color=raw.get("flag_color"),
            import_id=raw.get("import_id"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise LedgerAPIError(
            f"{context}: malformed transaction {raw.get('id', '?')}: {e!r}", context=context
        ) from e
