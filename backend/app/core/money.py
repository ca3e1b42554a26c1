from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0.00")
CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize to two decimal places, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)
