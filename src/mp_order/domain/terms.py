"""Commercial terms snapshot.

The fee percent is an explicit input captured once at creation; later changes
to the platform fee never reach existing orders.
"""

from dataclasses import dataclass
from decimal import Decimal

from src.mp_common.cents import split_amount
from src.mp_common.errors import InvalidAmountError


@dataclass(frozen=True)
class OrderTerms:
    quantity: int
    unit_price: int
    total_amount: int
    platform_fee_percent: Decimal
    platform_fee_amount: int
    seller_amount: int

    @classmethod
    def snapshot(cls, unit_price: int, quantity: int, fee_percent: Decimal) -> "OrderTerms":
        if quantity <= 0:
            raise InvalidAmountError(quantity)
        if unit_price <= 0:
            raise InvalidAmountError(unit_price)
        total = unit_price * quantity
        fee, seller_amount = split_amount(total, fee_percent)
        return cls(
            quantity=quantity,
            unit_price=unit_price,
            total_amount=total,
            platform_fee_percent=fee_percent,
            platform_fee_amount=fee,
            seller_amount=seller_amount,
        )
