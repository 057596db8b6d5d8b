"""
Money amounts - parsing and rounding to cents
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from escrow_core.services.errors import ValidationError

CENT = Decimal("0.01")


def normalize_amount(value: Any) -> Decimal:
    """Parse a positive amount with at most two decimal places"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("amount must be a number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("amount must be greater than 0")
    if amount != amount.quantize(CENT):
        raise ValidationError("amount must have at most two decimal places")
    return amount.quantize(CENT)
