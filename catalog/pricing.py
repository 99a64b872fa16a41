"""
Price helpers shared by the catalog and the order engine.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float, Decimal]


def resolve_final_unit_price(price: Number, discount: Optional[Number] = None) -> int:
    """
    Apply a percentage discount to a unit price.

    Halves round up, and the result never goes below zero. A missing
    discount leaves the price untouched; a negative one raises it.

    Args:
        price: Base unit price in whole currency units
        discount: Discount percent, ``None`` meaning no discount

    Returns:
        Final unit price as an integer
    """
    if discount is None:
        return int(price)

    factor = (Decimal(100) - Decimal(str(discount))) / Decimal(100)
    discounted = (Decimal(str(price)) * factor).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return max(0, int(discounted))
