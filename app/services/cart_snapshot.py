from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from app.schemas.cart import SNAPSHOT_VERSION, CartState
from app.services.exceptions import SnapshotError


def encode_snapshot(state: CartState) -> str:
    try:
        return state.model_dump_json(by_alias=True)
    except PydanticSerializationError as exc:
        raise SnapshotError(f"Cart {state.cart_id} could not be serialized") from exc


def _check_version(state: CartState) -> CartState:
    if state.version > SNAPSHOT_VERSION:
        raise SnapshotError(f"Unsupported cart snapshot version {state.version}")
    return state


def decode_snapshot(raw: str) -> CartState:
    try:
        state = CartState.model_validate_json(raw)
    except ValidationError as exc:
        raise SnapshotError(f"Corrupt cart snapshot: {exc.error_count()} invalid field(s)") from exc
    return _check_version(state)


def validate_snapshot(payload: Mapping[str, Any]) -> CartState:
    """Same as ``decode_snapshot`` for an already parsed payload."""
    try:
        state = CartState.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotError(f"Corrupt cart snapshot: {exc.error_count()} invalid field(s)") from exc
    return _check_version(state)


def stored_revision(raw: str | None) -> int:
    """Revision recorded in a raw snapshot, 0 when absent or unreadable."""
    if not raw:
        return 0
    try:
        payload = json.loads(raw)
    except ValueError:
        return 0
    revision = payload.get("revision", 0) if isinstance(payload, dict) else 0
    return revision if isinstance(revision, int) else 0


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(state: CartState, now: datetime, max_age: timedelta) -> bool:
    # Sin lastUpdated no hay forma de fechar el carrito.
    if state.last_updated is None:
        return True
    return _as_aware(now) - _as_aware(state.last_updated) >= max_age
