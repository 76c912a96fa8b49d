# tests/conftest.py
import sys
from pathlib import Path

# --- Configuración del Path ---
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import itertools
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from app.main import create_app
from app.services.cart_engine import CartEngine
from app.services.cart_store import InMemoryCartStore
from app.services.exceptions import PersistenceError


class FakeClock:
    """Reloj controlable: los tests avanzan el tiempo a mano."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


class FailingStore(InMemoryCartStore):
    """Store que falla al escribir, para simular cuota excedida."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = True

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistenceError("quota exceeded")
        super().set(key, value)


# ---------- Fixtures ----------
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def store() -> InMemoryCartStore:
    return InMemoryCartStore()


@pytest.fixture
def make_engine(store, clock, id_factory):
    """Fábrica de engines que comparten store y reloj (simula varias pestañas)."""

    def _make(**kwargs) -> CartEngine:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("id_factory", id_factory)
        return CartEngine(kwargs.pop("store", store), **kwargs)

    return _make


@pytest.fixture
def engine(make_engine) -> CartEngine:
    cart = make_engine()
    cart.init()
    return cart


@pytest.fixture
def product() -> dict:
    return {
        "id": "p-1",
        "name": "Zapatilla Runner",
        "price": 20.0,
        "image": "https://example.com/runner.jpg",
        "category": "shoes",
        "inStock": True,
    }


@pytest_asyncio.fixture(scope="function")
async def client(engine: CartEngine):
    """Provee un AsyncClient enlazado a una app con su propio engine."""
    app = create_app(engine=engine)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()
