"""Order pricing rules: tax, shipping, loyalty caps and totals.

Pure functions so checkout, cart previews and tests all agree on the numbers.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from libs.common.currency import ZERO, percent_of, points_to_vnd, to_vnd, vnd_to_points
from services.store_service.models import Product, ProductVariant

# ---------------------------------------------------------------------------
# Business constants
# ---------------------------------------------------------------------------
TAX_RATE = Decimal("0.08")
FREE_SHIPPING_THRESHOLD = Decimal("500000")
FLAT_SHIPPING_FEE = Decimal("30000")
MINIMUM_ORDER_VALUE = Decimal("50000")

MAX_QUANTITY_PER_ITEM = 10
MAX_ITEMS_PER_CART = 50

MAX_REDEMPTION_RATE = Decimal("0.20")
MINIMUM_REDEMPTION_POINTS = 50
WELCOME_BONUS_POINTS = 100
POINTS_EXPIRY_MONTHS = 24


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    coupon_discount: Decimal
    loyalty_discount: Decimal
    points_redeemed: int
    total_amount: Decimal

    @property
    def discount_amount(self) -> Decimal:
        return self.coupon_discount + self.loyalty_discount


def unit_price(product: Product, variant: Optional[ProductVariant] = None) -> Decimal:
    """Base price plus the variant adjustment, never below zero."""
    price = Decimal(product.base_price)
    if variant is not None:
        price += Decimal(variant.price_adjustment or 0)
    return max(to_vnd(price), ZERO)


def calculate_tax(subtotal: Decimal) -> Decimal:
    return percent_of(subtotal, TAX_RATE)


def calculate_shipping(subtotal: Decimal) -> Decimal:
    if subtotal <= ZERO:
        return ZERO
    return ZERO if subtotal >= FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_FEE


def max_redeemable_points(order_value: Decimal, balance: int) -> int:
    """Points usable on an order: bounded by balance and 20% of order value."""
    cap = vnd_to_points(percent_of(order_value, MAX_REDEMPTION_RATE))
    return max(0, min(balance, cap))


def points_earned(total: Decimal, vnd_per_point: int) -> int:
    """floor(total / vnd_per_point)."""
    if total <= ZERO or vnd_per_point <= 0:
        return 0
    return int(Decimal(total) // vnd_per_point)


def calculate_totals(
    subtotal: Decimal,
    *,
    coupon_discount: Decimal = ZERO,
    requested_points: int = 0,
    points_balance: int = 0,
) -> OrderTotals:
    """Compute every amount on an order.

    total = subtotal + tax + shipping - coupon - loyalty, clamped at zero.
    Redemption is capped by the balance and by 20% of subtotal + tax + shipping.
    """
    subtotal = to_vnd(subtotal)
    tax = calculate_tax(subtotal)
    shipping = calculate_shipping(subtotal)
    order_value = subtotal + tax + shipping

    coupon = min(to_vnd(coupon_discount), subtotal)
    points = 0
    if requested_points > 0:
        points = min(requested_points, max_redeemable_points(order_value, points_balance))
    # Never let loyalty push the total below zero after the coupon
    remaining = max(order_value - coupon, ZERO)
    points = min(points, vnd_to_points(remaining))
    loyalty = points_to_vnd(points)

    total = max(order_value - coupon - loyalty, ZERO)
    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax,
        shipping_amount=shipping,
        coupon_discount=coupon,
        loyalty_discount=loyalty,
        points_redeemed=points,
        total_amount=total,
    )
