from __future__ import annotations

import warnings
from typing import Any, Callable

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_cart_engine
from app.schemas.cart import (
    CartAnalytics,
    CartItemCreate,
    CartItemUpdate,
    CartMetaUpdate,
    CartRead,
    CartSummary,
    CouponApply,
    ShippingUpdate,
)
from app.services.cart_engine import CartEngine
from app.services.exceptions import CartPersistenceWarning

router = APIRouter(prefix="/cart", tags=["cart"])

VARIANT_HELP = "Variante seleccionada (talle, color)"


def _view(engine: CartEngine, notes: list[str] | None = None) -> CartRead:
    return CartRead(cart=engine.state, summary=engine.summary(), warnings=notes or [])


def _run(engine: CartEngine, command: Callable[..., Any], *args: Any, **kwargs: Any) -> CartRead:
    # Los endpoints son async y no ceden el loop aquí: el registro de warnings es por request.
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", CartPersistenceWarning)
        command(*args, **kwargs)
    notes = [str(w.message) for w in caught if issubclass(w.category, CartPersistenceWarning)]
    return _view(engine, notes)


@router.get("", response_model=CartRead)
async def get_cart(engine: CartEngine = Depends(get_cart_engine)):
    return _view(engine)


@router.get("/summary", response_model=CartSummary)
async def get_cart_summary(engine: CartEngine = Depends(get_cart_engine)):
    return engine.summary()


@router.get("/analytics", response_model=CartAnalytics)
async def get_cart_analytics(engine: CartEngine = Depends(get_cart_engine)):
    return engine.analytics()


@router.post("/items", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def add_cart_item(payload: CartItemCreate, engine: CartEngine = Depends(get_cart_engine)):
    return _run(engine, engine.add_item, payload.product, payload.quantity, payload.selected_variant)


@router.put("/items/{product_id}", response_model=CartRead)
async def update_cart_item(
    product_id: str,
    payload: CartItemUpdate,
    variant: str | None = Query(default=None, description=VARIANT_HELP),
    engine: CartEngine = Depends(get_cart_engine),
):
    return _run(engine, engine.update_quantity, product_id, payload.quantity, variant)


@router.delete("/items/{product_id}", response_model=CartRead)
async def remove_cart_item(
    product_id: str,
    variant: str | None = Query(default=None, description=VARIANT_HELP),
    engine: CartEngine = Depends(get_cart_engine),
):
    return _run(engine, engine.remove_item, product_id, variant)


@router.delete("/items", response_model=CartRead)
async def clear_cart(engine: CartEngine = Depends(get_cart_engine)):
    return _run(engine, engine.clear_cart)


@router.put("/coupon", response_model=CartRead)
async def apply_coupon(payload: CouponApply, engine: CartEngine = Depends(get_cart_engine)):
    return _run(engine, engine.apply_coupon, payload.code, payload.discount, payload.type)


@router.delete("/coupon", response_model=CartRead)
async def remove_coupon(engine: CartEngine = Depends(get_cart_engine)):
    return _run(engine, engine.remove_coupon)


@router.patch("/shipping", response_model=CartRead)
async def update_shipping(payload: ShippingUpdate, engine: CartEngine = Depends(get_cart_engine)):
    return _run(engine, engine.update_shipping, **payload.model_dump(exclude_unset=True))


@router.patch("/meta", response_model=CartRead)
async def update_cart_meta(payload: CartMetaUpdate, engine: CartEngine = Depends(get_cart_engine)):
    return _run(engine, engine.update_meta, **payload.model_dump(exclude_unset=True))


@router.post("/saved/{product_id}", response_model=CartRead)
async def save_for_later(
    product_id: str,
    variant: str | None = Query(default=None, description=VARIANT_HELP),
    engine: CartEngine = Depends(get_cart_engine),
):
    return _run(engine, engine.save_for_later, product_id, variant)


@router.post("/saved/{product_id}/move", response_model=CartRead)
async def move_to_cart(
    product_id: str,
    variant: str | None = Query(default=None, description=VARIANT_HELP),
    engine: CartEngine = Depends(get_cart_engine),
):
    return _run(engine, engine.move_to_cart, product_id, variant)


@router.delete("/saved/{product_id}", response_model=CartRead)
async def remove_saved_item(
    product_id: str,
    variant: str | None = Query(default=None, description=VARIANT_HELP),
    engine: CartEngine = Depends(get_cart_engine),
):
    return _run(engine, engine.remove_saved_item, product_id, variant)
