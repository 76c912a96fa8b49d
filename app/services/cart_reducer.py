from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

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
from app.domain.enums import CouponType
from app.schemas.cart import CartLineItem, CartMeta, CartState, Coupon, ShippingConfig
from app.services.exceptions import DomainValidationError

Key = tuple[str, Optional[str]]


def _find(items: Iterable[CartLineItem], key: Key) -> CartLineItem | None:
    return next((item for item in items if item.key == key), None)


def _without(items: Iterable[CartLineItem], key: Key) -> list[CartLineItem]:
    return [item for item in items if item.key != key]


def _replace(items: Iterable[CartLineItem], replacement: CartLineItem) -> list[CartLineItem]:
    return [replacement if item.key == replacement.key else item for item in items]


def _touch(state: CartState, command: Any, **changes: Any) -> CartState:
    return state.model_copy(update={**changes, "last_updated": command.at})


def _merge(existing: CartLineItem, extra_quantity: int, at) -> CartLineItem:
    quantity = min(existing.quantity + extra_quantity, existing.max_quantity)
    return existing.model_copy(update={"quantity": quantity, "last_updated": at})


def _init_cart(_: CartState, command: InitCart) -> CartState:
    if command.snapshot is not None:
        return command.snapshot
    return CartState(cart_id=command.cart_id, meta=command.meta, last_updated=command.at)


def _add_item(state: CartState, command: AddItem) -> CartState:
    key = (command.product.id, command.selected_variant)
    # Una línea activa nunca convive con la misma clave guardada para después.
    saved_items = _without(state.saved_items, key)

    existing = _find(state.items, key)
    if existing:
        items = _replace(state.items, _merge(existing, command.quantity, command.at))
        return _touch(state, command, items=items, saved_items=saved_items)

    product = command.product
    new_item = CartLineItem(
        product_id=product.id,
        selected_variant=command.selected_variant,
        cart_item_id=command.cart_item_id,
        name=product.name,
        image=product.image,
        category=product.category,
        unit_price=product.price,
        quantity=min(command.quantity, command.max_quantity),
        max_quantity=command.max_quantity,
        added_at=command.at,
        last_updated=command.at,
    )
    return _touch(state, command, items=[*state.items, new_item], saved_items=saved_items)


def _remove_item(state: CartState, command: RemoveItem) -> CartState:
    key = (command.product_id, command.selected_variant)
    if _find(state.items, key) is None:
        return state
    return _touch(state, command, items=_without(state.items, key))


def _update_quantity(state: CartState, command: UpdateQuantity) -> CartState:
    if command.quantity <= 0:
        return _remove_item(
            state,
            RemoveItem(product_id=command.product_id, selected_variant=command.selected_variant, at=command.at),
        )

    existing = _find(state.items, (command.product_id, command.selected_variant))
    if existing is None:
        return state

    updated = existing.model_copy(
        update={"quantity": min(command.quantity, existing.max_quantity), "last_updated": command.at}
    )
    return _touch(state, command, items=_replace(state.items, updated))


def _clear_cart(state: CartState, command: ClearCart) -> CartState:
    return _touch(state, command, items=[])


def _apply_coupon(state: CartState, command: ApplyCoupon) -> CartState:
    if not command.code or not command.code.strip():
        raise DomainValidationError("Coupon code must not be empty")
    try:
        coupon_type = CouponType(command.type)
    except ValueError as exc:
        raise DomainValidationError(f"Unknown coupon type: {command.type}") from exc
    if not math.isfinite(command.discount):
        raise DomainValidationError("Coupon discount must be a finite number")
    if command.discount < 0:
        raise DomainValidationError("Coupon discount must not be negative")
    if coupon_type is CouponType.percentage and command.discount > 100:
        raise DomainValidationError("Percentage coupons cannot exceed 100")

    coupon = Coupon(
        code=command.code.strip(),
        discount=command.discount,
        type=coupon_type,
        applied_at=command.at,
    )
    return _touch(state, command, coupon=coupon)


def _remove_coupon(state: CartState, command: RemoveCoupon) -> CartState:
    if state.coupon is None:
        return state
    return _touch(state, command, coupon=None)


def _check_fields(model: type, changes: dict[str, Any], label: str) -> None:
    known = set(model.model_fields)
    known.update(field.alias for field in model.model_fields.values() if field.alias)
    unknown = sorted(set(changes) - known)
    if unknown:
        raise DomainValidationError(f"Unknown {label} field(s): {', '.join(unknown)}")


def _update_shipping(state: CartState, command: UpdateShipping) -> CartState:
    _check_fields(ShippingConfig, command.changes, "shipping")
    if not command.changes:
        return state
    payload = {**state.shipping.model_dump(), **command.changes, "updated_at": command.at}
    try:
        shipping = ShippingConfig.model_validate(payload)
    except ValidationError as exc:
        raise DomainValidationError(f"Invalid shipping data: {exc.errors()[0]['msg']}") from exc
    return _touch(state, command, shipping=shipping)


def _update_meta(state: CartState, command: UpdateMeta) -> CartState:
    _check_fields(CartMeta, command.changes, "cart meta")
    if not command.changes:
        return state
    payload = {**state.meta.model_dump(), **command.changes}
    try:
        meta = CartMeta.model_validate(payload)
    except ValidationError as exc:
        raise DomainValidationError(f"Invalid cart meta: {exc.errors()[0]['msg']}") from exc
    return _touch(state, command, meta=meta)


def _save_for_later(state: CartState, command: SaveForLater) -> CartState:
    key = (command.product_id, command.selected_variant)
    item = _find(state.items, key)
    if item is None:
        return state

    saved = item.model_copy(update={"saved_at": command.at})
    already_saved = _find(state.saved_items, key)
    if already_saved:
        saved_items = _replace(state.saved_items, _merge(already_saved, item.quantity, command.at))
    else:
        saved_items = [*state.saved_items, saved]
    return _touch(state, command, items=_without(state.items, key), saved_items=saved_items)


def _move_to_cart(state: CartState, command: MoveToCart) -> CartState:
    key = (command.product_id, command.selected_variant)
    saved = _find(state.saved_items, key)
    if saved is None:
        return state

    existing = _find(state.items, key)
    if existing:
        # Se fusiona con la línea activa: conserva su cartItemId.
        items = _replace(state.items, _merge(existing, saved.quantity, command.at))
    else:
        moved = saved.model_copy(update={"saved_at": None, "added_at": command.at, "last_updated": command.at})
        items = [*state.items, moved]
    return _touch(state, command, items=items, saved_items=_without(state.saved_items, key))


def _remove_saved_item(state: CartState, command: RemoveSavedItem) -> CartState:
    key = (command.product_id, command.selected_variant)
    if _find(state.saved_items, key) is None:
        return state
    return _touch(state, command, saved_items=_without(state.saved_items, key))


_HANDLERS: dict[type, Callable[[CartState, Any], CartState]] = {
    InitCart: _init_cart,
    AddItem: _add_item,
    RemoveItem: _remove_item,
    UpdateQuantity: _update_quantity,
    ClearCart: _clear_cart,
    ApplyCoupon: _apply_coupon,
    RemoveCoupon: _remove_coupon,
    UpdateShipping: _update_shipping,
    UpdateMeta: _update_meta,
    SaveForLater: _save_for_later,
    MoveToCart: _move_to_cart,
    RemoveSavedItem: _remove_saved_item,
}


def reduce(state: CartState | None, command: Any) -> CartState:
    """Return the next cart state. ``state`` is never mutated.

    Lookup misses return ``state`` itself, so callers can detect a no-op with
    an identity check.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise DomainValidationError(f"Unsupported cart command: {type(command).__name__}")
    if state is None and not isinstance(command, InitCart):
        raise DomainValidationError("Cart must be initialized before applying commands")
    return handler(state, command)
