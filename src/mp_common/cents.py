"""Integer money utilities.

All prices, amounts, and balances use int (cents, the smallest currency unit).
Fee percentages are the only fractional values; they go through Decimal so
rounding is exact and half-up.
"""

from decimal import ROUND_HALF_UP, Decimal


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 6500 -> '$65.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"


def to_percent(value: float | int | str | Decimal) -> Decimal:
    """Normalise a fee percent to Decimal with two places (matches NUMERIC(5,2))."""
    percent = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if not (Decimal("0") <= percent <= Decimal("100")):
        raise ValueError(f"Fee percent must be between 0 and 100, got {value}")
    return percent


def calculate_commission(amount: int, fee_percent: Decimal) -> int:
    """Platform fee = round(amount * percent / 100), half-up, in whole cents.

    The seller share is always computed as amount - commission, so the two
    parts sum back to amount exactly.
    """
    if amount == 0 or fee_percent == 0:
        return 0
    fee = (Decimal(amount) * fee_percent / Decimal(100)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(fee)


def split_amount(amount: int, fee_percent: Decimal) -> tuple[int, int]:
    """Return (platform_fee, seller_amount) for a gross amount."""
    fee = calculate_commission(amount, fee_percent)
    return fee, amount - fee
