"""
Tests for Ghana phone numbers and document numbering.
"""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from stitchcraft.core.numbering import (
    format_number,
    generate_invoice_number,
    generate_order_number,
    parse_sequence,
    period_prefix,
)
from stitchcraft.core.phone import is_valid_ghana_phone, normalize_ghana_phone
from stitchcraft.database.models import Order


def _order(workshop, number: str) -> Order:
    return Order(
        order_number=number,
        tailor_id=workshop.tailor.id,
        organization_id=workshop.organization.id,
        client_id=workshop.client.id,
        garment_type="DASHIKI",
        total_amount=Decimal("100.00"),
    )


class TestGhanaPhone:
    """Test suite for phone normalization."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw",
        ["0241234567", "024 123 4567", "024-123-4567", "+233241234567", "+233 24 123 4567"],
    )
    def test_normalizes_to_international_form(self, raw: str) -> None:
        """Test local and international spellings converge."""
        assert normalize_ghana_phone(raw) == "+233241234567"

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["12345", "0141234567", "+2332412345678", "233241234567", ""])
    def test_rejects_invalid(self, raw: str) -> None:
        """Test numbers outside the Ghana plan are refused."""
        assert not is_valid_ghana_phone(raw)
        with pytest.raises(ValueError):
            normalize_ghana_phone(raw)


class TestNumbering:
    """Test suite for document numbers."""

    @pytest.mark.unit
    def test_format(self) -> None:
        """Test PREFIX-YYMM-NNNN."""
        assert format_number("SC", 7, datetime(2026, 1, 5)) == "SC-2601-0007"
        assert period_prefix("INV", datetime(2025, 12, 31)) == "INV-2512"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "number, expected",
        [
            ("SC-2601-0007", 7),
            ("PAY-2612-10004", 10004),
            ("SC-2601-", 0),
            ("SC-2601-00x1", 0),
            (None, 0),
        ],
    )
    def test_parse_sequence(self, number, expected: int) -> None:
        """Test the trailing sequence is read back, malformed tails count as zero."""
        assert parse_sequence(number) == expected

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sequences_are_per_tailor(self, db, workshop, other_workshop) -> None:
        """Test another tailor's orders do not advance the sequence."""
        first = await generate_order_number(db, workshop.tailor.id)
        other = await generate_order_number(db, other_workshop.tailor.id)

        assert first == other
        assert first.startswith("SC-")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_next_number_follows_highest_not_count(self, db, workshop) -> None:
        """Test a gap left by a deleted document is never refilled."""
        period = period_prefix("SC")
        db.add_all([_order(workshop, f"{period}-0001"), _order(workshop, f"{period}-0003")])
        await db.flush()

        assert await generate_order_number(db, workshop.tailor.id) == f"{period}-0004"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sequence_widens_past_four_digits(self, db, workshop) -> None:
        """Test 10000 sorts after 9999 even though it is longer."""
        period = period_prefix("SC")
        db.add_all([_order(workshop, f"{period}-9999"), _order(workshop, f"{period}-10000")])
        await db.flush()

        assert await generate_order_number(db, workshop.tailor.id) == f"{period}-10001"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_previous_months_do_not_count(self, db, workshop) -> None:
        """Test the seeded order from an earlier month leaves this month at 0001."""
        assert workshop.order.order_number == "SC-2601-0001"

        assert await generate_invoice_number(db, workshop.tailor.id) == (
            f"{period_prefix('INV')}-0001"
        )
        assert await generate_order_number(db, workshop.tailor.id) == (
            f"{period_prefix('SC')}-0001"
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_numbers_are_unique_per_tailor(self, db, workshop, other_workshop) -> None:
        """Test the schema refuses a repeated number for one tailor only."""
        db.add(_order(other_workshop, workshop.order.order_number))
        await db.flush()

        db.add(_order(workshop, workshop.order.order_number))
        with pytest.raises(IntegrityError):
            await db.flush()
