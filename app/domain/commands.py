# app/domain/commands.py
"""Cart commands consumed by the reducer.

Commands carry every non-deterministic input (timestamps, generated ids) so
that ``reduce`` stays a pure function of ``(state, command)``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from app.domain.enums import CouponType
from app.schemas.cart import CartMeta, CartState, ProductRecord


@dataclass(frozen=True)
class InitCart:
    cart_id: str
    at: datetime
    meta: CartMeta = field(default_factory=CartMeta)
    snapshot: Optional[CartState] = None


@dataclass(frozen=True)
class AddItem:
    product: ProductRecord
    quantity: int
    cart_item_id: str
    at: datetime
    max_quantity: int
    selected_variant: Optional[str] = None


@dataclass(frozen=True)
class RemoveItem:
    product_id: str
    at: datetime
    selected_variant: Optional[str] = None


@dataclass(frozen=True)
class UpdateQuantity:
    product_id: str
    quantity: int
    at: datetime
    selected_variant: Optional[str] = None


@dataclass(frozen=True)
class ClearCart:
    at: datetime


@dataclass(frozen=True)
class ApplyCoupon:
    code: str
    discount: float
    type: CouponType
    at: datetime


@dataclass(frozen=True)
class RemoveCoupon:
    at: datetime


@dataclass(frozen=True)
class UpdateShipping:
    changes: dict[str, Any]
    at: datetime


@dataclass(frozen=True)
class SaveForLater:
    product_id: str
    at: datetime
    selected_variant: Optional[str] = None


@dataclass(frozen=True)
class MoveToCart:
    product_id: str
    at: datetime
    selected_variant: Optional[str] = None


@dataclass(frozen=True)
class RemoveSavedItem:
    product_id: str
    at: datetime
    selected_variant: Optional[str] = None


@dataclass(frozen=True)
class UpdateMeta:
    changes: dict[str, Any]
    at: datetime
