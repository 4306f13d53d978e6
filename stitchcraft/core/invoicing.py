"""
Ghana invoice tax calculations.

VAT 15%, NHIL 2.5% and GETFUND 2.5% are each charged on the subtotal, for an
effective rate of 20%. Every amount is rounded to the pesewa.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from stitchcraft.database.models import as_aware, utcnow

VAT_RATE = Decimal("0.15")
NHIL_RATE = Decimal("0.025")
GETFUND_RATE = Decimal("0.025")
TOTAL_TAX_RATE = VAT_RATE + NHIL_RATE + GETFUND_RATE

CENT = Decimal("0.01")


def round_currency(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class InvoiceCalculation:
    items: List[Dict[str, Any]]
    subtotal: Decimal
    vat_amount: Decimal
    nhil_amount: Decimal
    getfund_amount: Decimal
    total_tax: Decimal
    total_amount: Decimal


def line_item_amount(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return round_currency(Decimal(quantity) * Decimal(unit_price))


def calculate_invoice(items: Iterable[Dict[str, Any]]) -> InvoiceCalculation:
    """
    Price line items and compute the tax breakdown.

    Args:
        items: Dicts with description, quantity and unit_price

    Returns:
        InvoiceCalculation with JSON-safe items (amounts as strings)
    """
    priced: List[Dict[str, Any]] = []
    subtotal = Decimal("0")
    for item in items:
        quantity = Decimal(str(item["quantity"]))
        unit_price = Decimal(str(item["unit_price"]))
        amount = line_item_amount(quantity, unit_price)
        subtotal += amount
        priced.append(
            {
                "description": item["description"],
                "quantity": str(quantity),
                "unit_price": str(round_currency(unit_price)),
                "amount": str(amount),
            }
        )

    subtotal = round_currency(subtotal)
    vat_amount = round_currency(subtotal * VAT_RATE)
    nhil_amount = round_currency(subtotal * NHIL_RATE)
    getfund_amount = round_currency(subtotal * GETFUND_RATE)
    total_tax = vat_amount + nhil_amount + getfund_amount

    return InvoiceCalculation(
        items=priced,
        subtotal=subtotal,
        vat_amount=vat_amount,
        nhil_amount=nhil_amount,
        getfund_amount=getfund_amount,
        total_tax=round_currency(total_tax),
        total_amount=round_currency(subtotal + total_tax),
    )


def reverse_tax(gross_amount: Decimal) -> Decimal:
    """Net amount contained in a tax-inclusive gross amount."""
    return round_currency(Decimal(gross_amount) / (1 + TOTAL_TAX_RATE))


def is_overdue(due_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if due_date is None:
        return False
    return (now or utcnow()) > as_aware(due_date)
