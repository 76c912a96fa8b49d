from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol

import redis

from app.core.config import Settings
from app.core.logging import get_logger
from app.services.exceptions import PersistenceError

logger = get_logger(__name__)


class CartStore(Protocol):
    """Key-value store holding serialized cart snapshots."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryCartStore:
    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._store.get(key)

    def set(self, key: str, value: str) -> None:
        self._store[key] = value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)


class JsonFileCartStore:
    """One UTF-8 JSON file per key under ``storage_dir``."""

    def __init__(self, storage_dir: Path | str) -> None:
        self.storage_dir = Path(storage_dir)

    def _file_path(self, key: str) -> Path:
        return self.storage_dir / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._file_path(key)
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise PersistenceError(f"Could not read {path}: {exc}") from exc
        return text or None

    def set(self, key: str, value: str) -> None:
        path = self._file_path(key)
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            # Escritura atómica: un snapshot a medio escribir no debe reemplazar al anterior.
            fd, tmp_name = tempfile.mkstemp(dir=self.storage_dir, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Could not write {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._file_path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Could not delete snapshot {key}: {exc}") from exc


class RedisCartStore:
    """Redis-backed store; snapshots expire with the cart max age."""

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        prefix: str = "cart",
        ttl_seconds: int | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        if client is None and not redis_url:
            raise PersistenceError("A Redis URL or client is required")
        self._prefix = prefix
        self._ttl = ttl_seconds
        self._redis = client or redis.Redis.from_url(redis_url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get(self, key: str) -> str | None:
        try:
            payload = self._redis.get(self._key(key))
        except redis.RedisError as exc:
            raise PersistenceError(f"Redis read failed for {key}: {exc}") from exc
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return payload

    def set(self, key: str, value: str) -> None:
        try:
            if self._ttl:
                self._redis.setex(self._key(key), self._ttl, value)
            else:
                self._redis.set(self._key(key), value)
        except redis.RedisError as exc:
            raise PersistenceError(f"Redis write failed for {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(self._key(key))
        except redis.RedisError as exc:
            raise PersistenceError(f"Redis delete failed for {key}: {exc}") from exc


def build_store(config: Settings) -> CartStore:
    backend = config.CART_STORE_BACKEND
    logger.info("cart store selected", extra={"backend": backend})
    if backend == "file":
        return JsonFileCartStore(config.CART_STORE_DIR)
    if backend == "redis":
        return RedisCartStore(
            config.REDIS_URL,
            prefix=config.CART_REDIS_PREFIX,
            ttl_seconds=config.CART_MAX_AGE_DAYS * 24 * 60 * 60,
        )
    return InMemoryCartStore()
