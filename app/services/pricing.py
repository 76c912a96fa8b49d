from __future__ import annotations

from app.domain.enums import CartValueScore, CouponType, ShippingMethod
from app.schemas.cart import CartAnalytics, CartState, CartSummary

DEFAULT_SHIPPING_COST = 5.99

HIGH_VALUE_SUBTOTAL = 100
MEDIUM_VALUE_SUBTOTAL = 50

ESTIMATED_SHIPPING_DAYS = {
    ShippingMethod.standard: 5,
    ShippingMethod.express: 2,
}


def subtotal(state: CartState) -> float:
    return sum(item.unit_price * item.quantity for item in state.items)


def discount_amount(state: CartState) -> float:
    """Coupon discount; a fixed coupon never exceeds the subtotal."""
    coupon = state.coupon
    if coupon is None:
        return 0
    base = subtotal(state)
    if coupon.type == CouponType.percentage:
        return base * coupon.discount / 100
    return min(coupon.discount, base)


def has_free_shipping(state: CartState) -> bool:
    return subtotal(state) >= state.meta.free_shipping_threshold


def shipping_cost(state: CartState, default_cost: float = DEFAULT_SHIPPING_COST) -> float:
    if has_free_shipping(state):
        return 0
    # cost == 0 means "not quoted yet"
    return state.shipping.cost or default_cost


def tax_amount(state: CartState, default_shipping_cost: float = DEFAULT_SHIPPING_COST) -> float:
    """Tax is charged on the discounted subtotal plus shipping."""
    taxable = subtotal(state) - discount_amount(state) + shipping_cost(state, default_shipping_cost)
    return taxable * state.meta.tax_rate


def total(state: CartState, default_shipping_cost: float = DEFAULT_SHIPPING_COST) -> float:
    return (
        subtotal(state)
        - discount_amount(state)
        + shipping_cost(state, default_shipping_cost)
        + tax_amount(state, default_shipping_cost)
    )


def total_item_count(state: CartState) -> int:
    return sum(item.quantity for item in state.items)


def build_summary(state: CartState, default_shipping_cost: float = DEFAULT_SHIPPING_COST) -> CartSummary:
    return CartSummary(
        items=len(state.items),
        total_quantity=total_item_count(state),
        subtotal=subtotal(state),
        discount=discount_amount(state),
        shipping=shipping_cost(state, default_shipping_cost),
        tax=tax_amount(state, default_shipping_cost),
        total=total(state, default_shipping_cost),
        has_free_shipping=has_free_shipping(state),
        currency=state.meta.currency,
    )


def build_analytics(state: CartState) -> CartAnalytics:
    base = subtotal(state)
    item_count = total_item_count(state)

    if base > HIGH_VALUE_SUBTOTAL:
        score = CartValueScore.high
    elif base > MEDIUM_VALUE_SUBTOTAL:
        score = CartValueScore.medium
    else:
        score = CartValueScore.low

    return CartAnalytics(
        subtotal=base,
        item_count=item_count,
        unique_products=len(state.items),
        average_item_price=base / item_count if item_count > 0 else 0,
        cart_value_score=score,
        estimated_shipping_days=ESTIMATED_SHIPPING_DAYS.get(state.shipping.method, 5),
    )
