"""Cart engine: owns one CartState, applies commands and persists snapshots.

Every command runs through the pure reducer in ``cart_reducer``; the engine
adds the side effects around it (timestamps, generated ids, audit logs and
the write-through to the cart store). Storage problems never fail a command:
the in-memory state stays authoritative and a ``CartPersistenceWarning`` is
emitted instead.
"""
from __future__ import annotations

import uuid
import warnings
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from app.core.config import Settings, settings
from app.core.logging import cart_event, get_logger
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
from app.schemas.cart import (
    DEFAULT_MAX_QUANTITY,
    CartAnalytics,
    CartMeta,
    CartState,
    CartSummary,
    ProductRecord,
    normalize_variant,
)
from app.services import pricing
from app.services.cart_reducer import reduce
from app.services.cart_snapshot import (
    decode_snapshot,
    encode_snapshot,
    is_expired,
    stored_revision,
    validate_snapshot,
)
from app.services.cart_store import CartStore, InMemoryCartStore, build_store
from app.services.exceptions import (
    CartPersistenceWarning,
    DomainValidationError,
    InvalidQuantityError,
    PersistenceError,
    SnapshotError,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class CartEngine:
    """Single-writer cart over one storage key.

    ``last_persistence_error`` is the authoritative storage signal: it holds
    the detail of the latest failed read or write and is cleared by the next
    successful write. ``CartPersistenceWarning`` goes through the ``warnings``
    filters, and Python's default filter shows a warning once per call site.
    Callers that need every warning must install an ``"always"`` filter, as
    the HTTP router does per request.
    """

    def __init__(
        self,
        store: CartStore | None = None,
        *,
        storage_key: str = "modern_cart_data",
        max_age: timedelta = timedelta(days=30),
        default_max_quantity: int = DEFAULT_MAX_QUANTITY,
        default_shipping_cost: float = pricing.DEFAULT_SHIPPING_COST,
        meta: CartMeta | None = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self.store = store if store is not None else InMemoryCartStore()
        self.storage_key = storage_key
        self.max_age = max_age
        self.default_max_quantity = default_max_quantity
        self.default_shipping_cost = default_shipping_cost
        self.meta = meta or CartMeta()
        self._clock = clock
        self._id_factory = id_factory
        self._state: CartState | None = None
        # Revisión conocida del snapshot persistido (leída o escrita por este engine).
        self._synced_revision = 0
        self.last_persistence_error: str | None = None

    @classmethod
    def from_settings(cls, config: Settings = settings, store: CartStore | None = None) -> "CartEngine":
        return cls(
            store if store is not None else build_store(config),
            storage_key=config.CART_STORAGE_KEY,
            max_age=timedelta(days=config.CART_MAX_AGE_DAYS),
            default_max_quantity=config.CART_DEFAULT_MAX_QUANTITY,
            default_shipping_cost=config.CART_DEFAULT_SHIPPING_COST,
            meta=CartMeta(
                currency=config.CART_CURRENCY,
                tax_rate=config.CART_TAX_RATE,
                free_shipping_threshold=config.CART_FREE_SHIPPING_THRESHOLD,
            ),
        )

    # ------------------------------------------------------------------
    # State & lifecycle
    # ------------------------------------------------------------------
    @property
    def state(self) -> CartState:
        if self._state is None:
            return self.init()
        return self._state

    @property
    def cart_id(self) -> str:
        return self.state.cart_id

    def init(self, snapshot: CartState | Mapping[str, Any] | str | None = None) -> CartState:
        """Restore ``snapshot`` (or the stored one) unless expired, else start empty."""
        restored = self._coerce_snapshot(snapshot) if snapshot is not None else self._load()

        if restored is not None and is_expired(restored, self._clock(), self.max_age):
            logger.info(
                "discarding expired cart snapshot",
                extra={"cart_id": restored.cart_id, "last_updated": restored.last_updated},
            )
            self._delete_snapshot()
            restored = None

        command = InitCart(cart_id=self._id_factory(), at=self._clock(), meta=self.meta, snapshot=restored)
        self._state = reduce(None, command)
        cart_event(self._state.cart_id, "init", restored=restored is not None)

        if restored is not None:
            self._synced_revision = restored.revision
        else:
            self._synced_revision = stored_revision(self._read_raw())
            self._persist()
        return self._state

    def _coerce_snapshot(self, snapshot: CartState | Mapping[str, Any] | str) -> CartState | None:
        if isinstance(snapshot, CartState):
            return snapshot
        try:
            if isinstance(snapshot, str):
                return decode_snapshot(snapshot)
            return validate_snapshot(snapshot)
        except SnapshotError as exc:
            logger.warning("discarding corrupt cart snapshot", extra={"error": exc.detail})
            return None

    def _read_raw(self) -> str | None:
        try:
            return self.store.get(self.storage_key)
        except PersistenceError as exc:
            self._report_persistence_failure(exc, "read")
            return None

    def _load(self) -> CartState | None:
        raw = self._read_raw()
        if raw is None:
            return None
        try:
            return decode_snapshot(raw)
        except SnapshotError as exc:
            logger.warning("discarding corrupt cart snapshot", extra={"error": exc.detail})
            self._delete_snapshot()
            return None

    def _delete_snapshot(self) -> None:
        try:
            self.store.delete(self.storage_key)
        except PersistenceError as exc:
            self._report_persistence_failure(exc, "delete")

    def _persist(self) -> None:
        state = self._state
        current = stored_revision(self._read_raw())
        if current > self._synced_revision:
            message = (
                f"Cart snapshot {self.storage_key} was written elsewhere "
                f"(revision {current} > {self._synced_revision}); overwriting"
            )
            logger.warning(message, extra={"cart_id": state.cart_id})
            warnings.warn(message, CartPersistenceWarning, stacklevel=3)

        revision = max(current, state.revision) + 1
        candidate = state.model_copy(update={"revision": revision})
        try:
            self.store.set(self.storage_key, encode_snapshot(candidate))
        except (PersistenceError, SnapshotError) as exc:
            self._report_persistence_failure(exc, "write")
            return

        self._state = candidate
        self._synced_revision = revision
        self.last_persistence_error = None

    def _report_persistence_failure(self, exc: PersistenceError | SnapshotError, operation: str) -> None:
        self.last_persistence_error = exc.detail
        logger.warning(
            "cart persistence failed; continuing in memory",
            extra={"operation": operation, "error": exc.detail, "storage_key": self.storage_key},
        )
        warnings.warn(f"Cart {operation} failed: {exc.detail}", CartPersistenceWarning, stacklevel=4)

    def _dispatch(self, command: Any, name: str, **context: Any) -> CartState:
        current = self.state
        next_state = reduce(current, command)
        if next_state is current:
            return current
        self._state = next_state
        cart_event(next_state.cart_id, name, **context)
        self._persist()
        return self._state

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def add_item(
        self,
        product: ProductRecord | Mapping[str, Any],
        quantity: int = 1,
        selected_variant: str | None = None,
    ) -> CartState:
        if not isinstance(product, ProductRecord):
            try:
                product = ProductRecord.model_validate(product)
            except ValidationError as exc:
                raise DomainValidationError(f"Invalid product: {exc.errors()[0]['msg']}") from exc
        if quantity < 1:
            raise InvalidQuantityError("Quantity to add must be at least 1")

        command = AddItem(
            product=product,
            quantity=quantity,
            cart_item_id=self._id_factory(),
            at=self._clock(),
            max_quantity=product.max_quantity or self.default_max_quantity,
            selected_variant=normalize_variant(selected_variant),
        )
        return self._dispatch(command, "add_item", product_id=product.id, quantity=quantity)

    def remove_item(self, product_id: str, selected_variant: str | None = None) -> CartState:
        command = RemoveItem(
            product_id=product_id, selected_variant=normalize_variant(selected_variant), at=self._clock()
        )
        return self._dispatch(command, "remove_item", product_id=product_id)

    def update_quantity(self, product_id: str, quantity: int, selected_variant: str | None = None) -> CartState:
        command = UpdateQuantity(
            product_id=product_id,
            quantity=quantity,
            selected_variant=normalize_variant(selected_variant),
            at=self._clock(),
        )
        return self._dispatch(command, "update_quantity", product_id=product_id, quantity=quantity)

    def clear_cart(self) -> CartState:
        return self._dispatch(ClearCart(at=self._clock()), "clear_cart")

    def apply_coupon(
        self, code: str, discount: float, type: CouponType | str = CouponType.percentage
    ) -> CartState:
        command = ApplyCoupon(code=code, discount=discount, type=type, at=self._clock())
        return self._dispatch(command, "apply_coupon", code=code)

    def remove_coupon(self) -> CartState:
        return self._dispatch(RemoveCoupon(at=self._clock()), "remove_coupon")

    def update_shipping(self, **changes: Any) -> CartState:
        return self._dispatch(UpdateShipping(changes=changes, at=self._clock()), "update_shipping")

    def update_meta(self, **changes: Any) -> CartState:
        return self._dispatch(UpdateMeta(changes=changes, at=self._clock()), "update_meta")

    def save_for_later(self, product_id: str, selected_variant: str | None = None) -> CartState:
        command = SaveForLater(
            product_id=product_id, selected_variant=normalize_variant(selected_variant), at=self._clock()
        )
        return self._dispatch(command, "save_for_later", product_id=product_id)

    def move_to_cart(self, product_id: str, selected_variant: str | None = None) -> CartState:
        command = MoveToCart(
            product_id=product_id, selected_variant=normalize_variant(selected_variant), at=self._clock()
        )
        return self._dispatch(command, "move_to_cart", product_id=product_id)

    def remove_saved_item(self, product_id: str, selected_variant: str | None = None) -> CartState:
        command = RemoveSavedItem(
            product_id=product_id, selected_variant=normalize_variant(selected_variant), at=self._clock()
        )
        return self._dispatch(command, "remove_saved_item", product_id=product_id)

    # ------------------------------------------------------------------
    # Derived values (recomputed on every call)
    # ------------------------------------------------------------------
    def subtotal(self) -> float:
        return pricing.subtotal(self.state)

    def discount_amount(self) -> float:
        return pricing.discount_amount(self.state)

    def shipping_cost(self) -> float:
        return pricing.shipping_cost(self.state, self.default_shipping_cost)

    def tax_amount(self) -> float:
        return pricing.tax_amount(self.state, self.default_shipping_cost)

    def total(self) -> float:
        return pricing.total(self.state, self.default_shipping_cost)

    def total_item_count(self) -> int:
        return pricing.total_item_count(self.state)

    @property
    def has_free_shipping(self) -> bool:
        return pricing.has_free_shipping(self.state)

    @property
    def is_empty(self) -> bool:
        return not self.state.items

    def is_item_in_cart(self, product_id: str, selected_variant: str | None = None) -> bool:
        key = (product_id, normalize_variant(selected_variant))
        return any(item.key == key for item in self.state.items)

    def get_item_quantity(self, product_id: str, selected_variant: str | None = None) -> int:
        key = (product_id, normalize_variant(selected_variant))
        return next((item.quantity for item in self.state.items if item.key == key), 0)

    def summary(self) -> CartSummary:
        return pricing.build_summary(self.state, self.default_shipping_cost)

    def analytics(self) -> CartAnalytics:
        return pricing.build_analytics(self.state)
