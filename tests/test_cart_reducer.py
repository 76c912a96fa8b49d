from datetime import datetime, timezone

import pytest

from app.domain.commands import (
    AddItem,
    ApplyCoupon,
    ClearCart,
    InitCart,
    MoveToCart,
    RemoveCoupon,
    RemoveItem,
    RemoveSavedItem,
    SaveForLater,
    UpdateMeta,
    UpdateQuantity,
    UpdateShipping,
)
from app.domain.enums import CouponType, ShippingMethod
from app.schemas.cart import ProductRecord
from app.services.cart_reducer import reduce
from app.services.exceptions import DomainValidationError

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 3, 1, 12, 5, tzinfo=timezone.utc)

SHIRT = ProductRecord(id="shirt", name="Remera", price=15.0)
HAT = ProductRecord(id="hat", name="Gorra", price=8.5, max_quantity=3)


# ---------- helpers ----------

def _empty():
    return reduce(None, InitCart(cart_id="cart-1", at=T0))


def _add(state, product=SHIRT, quantity=1, variant=None, item_id="line-1", at=T0):
    return reduce(
        state,
        AddItem(
            product=product,
            quantity=quantity,
            cart_item_id=item_id,
            at=at,
            max_quantity=product.max_quantity or 10,
            selected_variant=variant,
        ),
    )


# ---------- tests ----------

def test_init_without_snapshot_creates_empty_cart():
    state = _empty()
    assert state.cart_id == "cart-1"
    assert state.items == [] and state.saved_items == []
    assert state.coupon is None
    assert state.shipping.method == ShippingMethod.standard
    assert state.last_updated == T0


def test_init_with_snapshot_returns_it_untouched():
    snapshot = _add(_empty(), quantity=2)
    restored = reduce(None, InitCart(cart_id="ignored", at=T1, snapshot=snapshot))
    assert restored == snapshot


def test_adding_same_product_and_variant_merges_lines():
    state = _add(_empty(), variant="M", item_id="line-1")
    state = _add(state, variant="M", item_id="line-2", quantity=2)
    state = _add(state, variant="L", item_id="line-3")
    state = _add(state, product=HAT, item_id="line-4")

    keys = [item.key for item in state.items]
    assert keys == [("shirt", "M"), ("shirt", "L"), ("hat", None)]
    assert len(set(keys)) == len(keys)
    assert state.items[0].quantity == 3
    # La línea fusionada conserva su cartItemId original
    assert state.items[0].cart_item_id == "line-1"


def test_quantity_is_clamped_to_max_quantity():
    state = _add(_empty(), quantity=7)
    state = _add(state, quantity=7)
    assert len(state.items) == 1
    assert state.items[0].quantity == 10

    capped = _add(_empty(), product=HAT, quantity=5)
    assert capped.items[0].quantity == 3


def test_unit_price_is_a_snapshot_of_the_product():
    state = _add(_empty())
    cheaper = SHIRT.model_copy(update={"price": 1.0})
    state = _add(state, product=cheaper)
    assert state.items[0].unit_price == 15.0
    assert state.items[0].quantity == 2


def test_update_quantity_zero_is_the_same_as_remove():
    state = _add(_empty(), variant="M")
    removed = reduce(state, RemoveItem(product_id="shirt", selected_variant="M", at=T1))
    zeroed = reduce(state, UpdateQuantity(product_id="shirt", quantity=0, selected_variant="M", at=T1))
    negative = reduce(state, UpdateQuantity(product_id="shirt", quantity=-3, selected_variant="M", at=T1))
    assert zeroed == removed == negative
    assert zeroed.items == []


def test_update_quantity_clamps_and_stamps():
    state = _add(_empty())
    state = reduce(state, UpdateQuantity(product_id="shirt", quantity=25, at=T1))
    assert state.items[0].quantity == 10
    assert state.items[0].last_updated == T1
    assert state.last_updated == T1


def test_lookup_misses_are_noops():
    state = _add(_empty())
    assert reduce(state, RemoveItem(product_id="nope", at=T1)) is state
    assert reduce(state, UpdateQuantity(product_id="nope", quantity=4, at=T1)) is state
    assert reduce(state, SaveForLater(product_id="nope", at=T1)) is state
    assert reduce(state, MoveToCart(product_id="shirt", at=T1)) is state
    assert reduce(state, RemoveSavedItem(product_id="shirt", at=T1)) is state
    # Misma clave de producto pero otra variante
    assert reduce(state, RemoveItem(product_id="shirt", selected_variant="XL", at=T1)) is state


def test_reducer_never_mutates_previous_state():
    before = _add(_empty(), quantity=2)
    snapshot = before.model_dump()
    reduce(before, UpdateQuantity(product_id="shirt", quantity=5, at=T1))
    reduce(before, ClearCart(at=T1))
    assert before.model_dump() == snapshot


def test_clear_cart_keeps_saved_items_coupon_and_shipping():
    state = _add(_empty(), item_id="line-1")
    state = _add(state, product=HAT, item_id="line-2")
    state = reduce(state, SaveForLater(product_id="hat", at=T1))
    state = reduce(state, ApplyCoupon(code="SALE", discount=10, type=CouponType.percentage, at=T1))
    state = reduce(state, UpdateShipping(changes={"method": "express", "cost": 12}, at=T1))

    cleared = reduce(state, ClearCart(at=T1))
    assert cleared.items == []
    assert cleared.saved_items == state.saved_items
    assert cleared.coupon == state.coupon
    assert cleared.shipping == state.shipping


def test_save_for_later_then_move_to_cart_round_trip():
    state = _add(_empty())
    saved = reduce(state, SaveForLater(product_id="shirt", at=T1))
    assert saved.items == []
    assert [item.key for item in saved.saved_items] == [("shirt", None)]
    assert saved.saved_items[0].saved_at == T1

    moved = reduce(saved, MoveToCart(product_id="shirt", at=T1))
    assert [item.key for item in moved.items] == [("shirt", None)]
    assert moved.saved_items == []
    assert moved.items[0].saved_at is None
    assert moved.items[0].cart_item_id == state.items[0].cart_item_id


def test_move_to_cart_merges_into_existing_active_line():
    state = _add(_empty(), quantity=4, item_id="line-1")
    state = reduce(state, SaveForLater(product_id="shirt", at=T1))
    # El mismo producto vuelve a agregarse mientras sigue guardado
    state = _add(state, quantity=2, item_id="line-2")
    assert state.saved_items == []

    # Simula un snapshot que quedó con la clave en ambas listas
    saved_copy = state.items[0].model_copy(update={"quantity": 9, "cart_item_id": "line-9"})
    inconsistent = state.model_copy(update={"saved_items": [saved_copy]})
    merged = reduce(inconsistent, MoveToCart(product_id="shirt", at=T1))

    assert len(merged.items) == 1
    assert merged.items[0].cart_item_id == "line-2"
    assert merged.items[0].quantity == 10
    assert merged.saved_items == []


def test_remove_saved_item_only_touches_saved_list():
    state = _add(_empty(), variant="M", item_id="line-1")
    state = _add(state, variant="L", item_id="line-2")
    state = reduce(state, SaveForLater(product_id="shirt", selected_variant="L", at=T1))
    state = reduce(state, RemoveSavedItem(product_id="shirt", selected_variant="L", at=T1))
    assert state.saved_items == []
    assert [item.key for item in state.items] == [("shirt", "M")]


def test_apply_coupon_replaces_previous_one():
    state = reduce(_empty(), ApplyCoupon(code="TEN", discount=10, type=CouponType.percentage, at=T0))
    state = reduce(state, ApplyCoupon(code="FIVE", discount=5, type=CouponType.fixed, at=T1))
    assert state.coupon.code == "FIVE"
    assert state.coupon.type == CouponType.fixed
    assert state.coupon.applied_at == T1

    state = reduce(state, RemoveCoupon(at=T1))
    assert state.coupon is None
    assert reduce(state, RemoveCoupon(at=T1)) is state


@pytest.mark.parametrize(
    "code,discount,coupon_type",
    [
        ("", 10, CouponType.percentage),
        ("NEG", -1, CouponType.fixed),
        ("TOO-MUCH", 150, CouponType.percentage),
        ("WHAT", 10, "bogus"),
        ("NAN", float("nan"), CouponType.percentage),
        ("NAN-FIXED", float("nan"), CouponType.fixed),
        ("INF", float("inf"), CouponType.fixed),
    ],
)
def test_invalid_coupons_are_rejected(code, discount, coupon_type):
    state = _empty()
    with pytest.raises(DomainValidationError):
        reduce(state, ApplyCoupon(code=code, discount=discount, type=coupon_type, at=T1))


def test_fixed_coupon_above_100_is_accepted():
    state = reduce(_empty(), ApplyCoupon(code="BIG", discount=250, type="fixed", at=T1))
    assert state.coupon.discount == 250


def test_update_shipping_merges_fields():
    state = reduce(_empty(), UpdateShipping(changes={"method": "express"}, at=T1))
    state = reduce(state, UpdateShipping(changes={"address": {"city": "Nairobi"}}, at=T1))
    assert state.shipping.method == ShippingMethod.express
    assert state.shipping.address == {"city": "Nairobi"}
    assert state.shipping.cost == 0
    assert state.shipping.updated_at == T1


def test_update_shipping_rejects_invalid_method():
    with pytest.raises(DomainValidationError):
        reduce(_empty(), UpdateShipping(changes={"method": "teleport"}, at=T1))


def test_update_shipping_rejects_unknown_fields():
    with pytest.raises(DomainValidationError, match="carrier"):
        reduce(_empty(), UpdateShipping(changes={"carrier": "dhl"}, at=T1))


def test_update_shipping_accepts_camel_case_fields():
    state = reduce(_empty(), UpdateShipping(changes={"estimatedDelivery": "2026-03-05"}, at=T1))
    assert state.shipping.estimated_delivery == "2026-03-05"


def test_update_shipping_rejects_infinite_cost():
    with pytest.raises(DomainValidationError):
        reduce(_empty(), UpdateShipping(changes={"cost": float("inf")}, at=T1))


def test_update_meta_rejects_unknown_fields():
    with pytest.raises(DomainValidationError, match="taxes"):
        reduce(_empty(), UpdateMeta(changes={"taxes": 0.2}, at=T1))


def test_empty_updates_are_noops():
    state = _empty()
    assert reduce(state, UpdateShipping(changes={}, at=T1)) is state
    assert reduce(state, UpdateMeta(changes={}, at=T1)) is state


@pytest.mark.parametrize("price", [float("nan"), float("inf")])
def test_product_record_rejects_non_finite_price(price):
    with pytest.raises(ValueError):
        ProductRecord(id="p-1", price=price)


def test_commands_before_init_are_rejected():
    with pytest.raises(DomainValidationError):
        reduce(None, ClearCart(at=T0))
