"""
Money helpers.

All amounts are stored as NUMERIC(12, 2) and handled as Decimal inside the
service layer. Rounding is nearest-cent, half-up. JSON responses carry plain
numbers, matching what the console has always consumed.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Maximum amount: 9,999,999,999.99 (fits NUMERIC(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal to a 2-place Decimal. None is zero."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise InvalidOperation("booleans are not amounts")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        # str() first so 0.1 stays 0.1 rather than its binary expansion
        amount = Decimal(str(value))
    elif isinstance(value, (int, str)):
        amount = Decimal(str(value).strip())
    else:
        raise InvalidOperation(f"unsupported amount type: {type(value).__name__}")
    if not amount.is_finite():
        raise InvalidOperation("amount must be finite")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_json(value) -> float:
    return float(to_money(value))
