"""
Pricing arithmetic: subtotals, promo discounts and final totals.

The same functions serve display-time estimates and the value materialized
at acceptance, so the two cannot drift apart.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from order_engine.config.constants import CURRENCY_QUANTUM, ZERO
from order_engine.models.enums import DiscountType

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert a currency-ish value to Decimal; None becomes zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PromoDescriptor:
    """The parts of a promo code that determine its discount."""

    discount_type: DiscountType = DiscountType.NONE
    amount: Optional[Decimal] = None
    percent: Optional[Decimal] = None

    @classmethod
    def from_promo_code(cls, promo_code) -> "PromoDescriptor":
        if promo_code is None:
            return cls()
        return cls(
            discount_type=promo_code.discount_type or DiscountType.NONE,
            amount=promo_code.discount_amount,
            percent=promo_code.discount_percent,
        )


def order_subtotal(items: Iterable) -> Decimal:
    """Sum of price x quantity over line items (snapshot prices)."""
    total = sum((to_decimal(item.price) * item.quantity for item in items), ZERO)
    return quantize_money(total)


def _raw_discount(subtotal: Decimal, descriptor: PromoDescriptor) -> Decimal:
    amount = to_decimal(descriptor.amount)
    percent_part = subtotal * to_decimal(descriptor.percent) / Decimal(100)

    if descriptor.discount_type == DiscountType.FLAT:
        return amount
    if descriptor.discount_type == DiscountType.PERCENTAGE:
        return percent_part
    if descriptor.discount_type == DiscountType.BOTH:
        return amount + percent_part
    return ZERO


def calculate_promo_discount(subtotal: Number, descriptor: PromoDescriptor) -> Decimal:
    """
    Promo discount for a subtotal.

    FLAT takes the amount, PERCENTAGE the percent of the subtotal, BOTH the
    sum of the two. The result is capped at the subtotal, never negative,
    and rounded half-up to cents.
    """
    subtotal = to_decimal(subtotal)
    discount = _raw_discount(subtotal, descriptor)
    discount = max(ZERO, min(discount, subtotal))
    return quantize_money(discount)


def calculate_final_total(
    subtotal: Number,
    admin_discount: Optional[Number] = None,
    promo_discount: Optional[Number] = None,
    floor_at_zero: bool = True,
) -> Decimal:
    """Subtotal minus both discounts. The discounts are independent of each other."""
    total = to_decimal(subtotal) - to_decimal(admin_discount) - to_decimal(promo_discount)
    if floor_at_zero:
        total = max(ZERO, total)
    return quantize_money(total)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    admin_discount: Decimal
    promo_discount: Decimal
    total: Decimal
    # True when promo_discount was estimated from the live promo code
    promo_estimated: bool = False


def order_totals(order, promo_code=None) -> OrderTotals:
    """
    Totals for an order.

    Uses the materialized promo discount when the order has one; otherwise
    estimates it from `promo_code` (normally the order's attached code)
    without persisting anything.
    """
    subtotal = order_subtotal(order.items)
    promo_estimated = False

    if order.promo_discount is not None:
        promo_discount = quantize_money(order.promo_discount)
    elif promo_code is not None:
        promo_discount = calculate_promo_discount(subtotal, PromoDescriptor.from_promo_code(promo_code))
        promo_estimated = True
    else:
        promo_discount = ZERO

    admin_discount = quantize_money(to_decimal(order.admin_discount))
    return OrderTotals(
        subtotal=subtotal,
        admin_discount=admin_discount,
        promo_discount=promo_discount,
        total=calculate_final_total(subtotal, admin_discount, promo_discount),
        promo_estimated=promo_estimated,
    )


def catalog_price(product) -> Decimal:
    """
    Price after the product's own catalog discount, floored at zero.

    Flat is taken off first, then the percentage applies to the remainder.
    """
    price = to_decimal(product.price)
    discount_type = product.discount_type

    if discount_type in (DiscountType.FLAT, DiscountType.BOTH):
        price -= to_decimal(product.discount_amount)
    if discount_type in (DiscountType.PERCENTAGE, DiscountType.BOTH):
        price = price * (Decimal(1) - to_decimal(product.discount_percent) / Decimal(100))

    return quantize_money(max(ZERO, price))
