"""
Pricing calculator.

Splits a package price into deposit and remaining amounts. All arithmetic is
done on ``Decimal`` values rounded half-up to the cent, and the remaining
amount is derived by subtraction so the two parts always add back up to the
package price exactly.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class PricingSnapshot:
    package_price: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal


def to_decimal(value: Number) -> Decimal:
    """Coerce a money value to a Decimal rounded to the cent."""
    if isinstance(value, float):
        # go through str so 0.1 stays 0.1
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_pricing(price: Number, deposit_percentage: int) -> PricingSnapshot:
    if not 0 <= deposit_percentage <= 100:
        raise ValueError("deposit_percentage must be between 0 and 100")

    package_price = to_decimal(price)
    if package_price < 0:
        raise ValueError("price cannot be negative")

    deposit_amount = (package_price * Decimal(deposit_percentage) / Decimal(100)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    remaining_amount = package_price - deposit_amount
    return PricingSnapshot(
        package_price=package_price,
        deposit_amount=deposit_amount,
        remaining_amount=remaining_amount,
    )


def pricing_for_package(package) -> PricingSnapshot:
    return compute_pricing(package.price, package.deposit_percentage)


def to_minor_units(amount: Number) -> int:
    """Decimal currency amount to integer cents, as the processor expects."""
    return int((to_decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    return (Decimal(int(cents)) / Decimal(100)).quantize(CENT)
