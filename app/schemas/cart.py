# app/schemas/cart.py
from __future__ import annotations
from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.domain.enums import CartValueScore, CouponType, ShippingMethod

DEFAULT_MAX_QUANTITY = 10
SNAPSHOT_VERSION = 1


def normalize_variant(value: Any) -> Any:
    # Una variante vacía es lo mismo que "sin variante".
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CamelModel(BaseModel):
    """Los snapshots y la API usan las claves camelCase del storefront."""

    # NaN e infinito no sobreviven al snapshot JSON: se rechazan en el borde.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False, frozen=True)


class ProductRecord(CamelModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    price: float = Field(..., ge=0)
    image: str = ""
    category: str = ""
    in_stock: bool = True
    max_quantity: Optional[int] = Field(default=None, ge=1)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        # El catálogo scrapeado mezcla ids numéricos y strings.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class CartLineItem(FrozenCamelModel):
    # Los snapshots viejos guardaban el producto completo: "id" y "price".
    product_id: str = Field(
        alias="productId",
        validation_alias=AliasChoices("productId", "product_id", "id"),
    )
    selected_variant: Optional[str] = None
    cart_item_id: str
    name: str = ""
    image: str = ""
    category: str = ""
    unit_price: float = Field(
        ge=0,
        alias="unitPrice",
        validation_alias=AliasChoices("unitPrice", "unit_price", "price"),
    )
    quantity: int = Field(..., ge=1)
    max_quantity: int = Field(default=DEFAULT_MAX_QUANTITY, ge=1)
    added_at: datetime
    last_updated: datetime
    saved_at: Optional[datetime] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("selected_variant", mode="before")
    @classmethod
    def clean_variant(cls, value: Any) -> Any:
        return normalize_variant(value)

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return self.product_id, self.selected_variant

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class Coupon(FrozenCamelModel):
    code: str
    discount: float
    type: CouponType = CouponType.percentage
    applied_at: datetime


class ShippingConfig(FrozenCamelModel):
    method: ShippingMethod = ShippingMethod.standard
    cost: float = Field(default=0, ge=0)
    address: Optional[Any] = None
    estimated_delivery: Optional[str] = None
    updated_at: Optional[datetime] = None


class CartMeta(FrozenCamelModel):
    currency: str = Field(default="USD", min_length=3, max_length=3)
    tax_rate: float = Field(default=0.1, ge=0)
    free_shipping_threshold: float = Field(default=50, ge=0)


class CartState(FrozenCamelModel):
    """Aggregate root persisted as a single JSON snapshot."""

    version: int = SNAPSHOT_VERSION
    revision: int = Field(default=0, ge=0)
    cart_id: str
    items: List[CartLineItem] = Field(default_factory=list)
    saved_items: List[CartLineItem] = Field(default_factory=list)
    coupon: Optional[Coupon] = None
    shipping: ShippingConfig = Field(default_factory=ShippingConfig)
    meta: CartMeta = Field(default_factory=CartMeta)
    last_updated: Optional[datetime] = None


# --- Vistas derivadas ---

class CartSummary(CamelModel):
    items: int
    total_quantity: int
    subtotal: float
    discount: float
    shipping: float
    tax: float
    total: float
    has_free_shipping: bool
    currency: str


class CartAnalytics(CamelModel):
    subtotal: float
    item_count: int
    unique_products: int
    average_item_price: float
    cart_value_score: CartValueScore
    estimated_shipping_days: int


class CartRead(CamelModel):
    cart: CartState
    summary: CartSummary
    warnings: List[str] = Field(default_factory=list)


# --- Payloads de entrada ---

class CartItemCreate(CamelModel):
    product: ProductRecord
    quantity: int = Field(default=1, gt=0)
    selected_variant: Optional[str] = None

    @field_validator("selected_variant", mode="before")
    @classmethod
    def clean_variant(cls, value: Any) -> Any:
        return normalize_variant(value)


class CartItemUpdate(CamelModel):
    # <= 0 elimina la línea
    quantity: int


class CouponApply(CamelModel):
    code: str
    discount: float
    type: CouponType = CouponType.percentage


class ShippingUpdate(CamelModel):
    method: Optional[ShippingMethod] = None
    cost: Optional[float] = Field(default=None, ge=0)
    address: Optional[Any] = None
    estimated_delivery: Optional[str] = None


class CartMetaUpdate(CamelModel):
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    tax_rate: Optional[float] = Field(default=None, ge=0)
    free_shipping_threshold: Optional[float] = Field(default=None, ge=0)
