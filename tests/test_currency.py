"""Tests for milliunit conversion and import id generation."""

from decimal import Decimal

from ynab_statement_recon.utils.currency import (
    build_idempotency_key,
    to_major_units,
    to_minor_units,
)


class TestToMinorUnits:
    def test_converts_whole_and_fractional_amounts(self):
        assert to_minor_units(Decimal("30.00")) == 30000
        assert to_minor_units(Decimal("414.00")) == 414000
        assert to_minor_units(Decimal("0.01")) == 10

    def test_negative_amounts_keep_their_sign(self):
        assert to_minor_units(Decimal("-12.34")) == -12340

    def test_rounds_rather_than_truncates(self):
        # 0.1 + 0.2 is 0.30000000000000004 as a float
        assert to_minor_units(0.1 + 0.2) == 300
        assert to_minor_units(Decimal("1.0005")) == 1001
        assert to_minor_units(Decimal("1.0004")) == 1000

    def test_accepts_strings_and_ints(self):
        assert to_minor_units("19.99") == 19990
        assert to_minor_units(5) == 5000


class TestToMajorUnits:
    def test_divides_exactly(self):
        assert to_major_units(-414000) == Decimal("-414")
        assert to_major_units(30005) == Decimal("30.005")
        assert to_major_units(0) == Decimal("0")

    def test_returns_decimal(self):
        assert isinstance(to_major_units(1), Decimal)


class TestBuildIdempotencyKey:
    def test_format(self):
        key = build_idempotency_key(
            Decimal("414.00"), "2026-02-01", "AT260320003000010160795"
        )
        assert key == "YNAB:414000:2026-02-01:AT2603200030"

    def test_is_deterministic(self):
        args = (Decimal("12.50"), "2026-02-03", "REF-000123456789")
        assert build_idempotency_key(*args) == build_idempotency_key(*args)

    def test_differs_when_any_input_differs(self):
        base = build_idempotency_key(Decimal("12.50"), "2026-02-03", "REF-0001")
        assert build_idempotency_key(Decimal("12.51"), "2026-02-03", "REF-0001") != base
        assert build_idempotency_key(Decimal("12.50"), "2026-02-04", "REF-0001") != base
        assert build_idempotency_key(Decimal("12.50"), "2026-02-03", "REF-0002") != base

    def test_short_reference_is_used_whole(self):
        assert build_idempotency_key(Decimal("1"), "2026-01-01", "ABC").endswith(":ABC")
