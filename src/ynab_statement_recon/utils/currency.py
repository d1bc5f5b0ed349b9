"""
Conversion between statement amounts and ledger milliunits.

The ledger stores amounts as integers where 1000 milliunits make one
currency unit. Statement amounts are decimals in the currency unit.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

MILLIUNITS_PER_UNIT = 1000
IMPORT_ID_PREFIX = "YNAB"
REFERENCE_PREFIX_LENGTH = 12

Number = Union[Decimal, int, float, str]


def to_minor_units(amount: Number) -> int:
    """Convert a currency amount to milliunits, rounding to the nearest unit."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * MILLIUNITS_PER_UNIT).to_integral_value(rounding=ROUND_HALF_UP))


def to_major_units(subunits: int) -> Decimal:
    """Convert milliunits to a currency amount (exact)."""
    return Decimal(subunits) / MILLIUNITS_PER_UNIT


def build_idempotency_key(amount: Number, date: str, reference: str) -> str:
    """
    Build the ledger import id for a statement transaction.

    Format: ``YNAB:{milliunits}:{date}:{reference[:12]}``. Identical inputs
    always give the same key so re-submitting a transaction is detected
    by the ledger as a duplicate.
    """
    return (
        f"{IMPORT_ID_PREFIX}:{to_minor_units(amount)}:{date}:"
        f"{reference[:REFERENCE_PREFIX_LENGTH]}"
    )
