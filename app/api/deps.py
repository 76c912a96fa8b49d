# app/api/deps.py
from fastapi import HTTPException, Request, status

from app.services.cart_engine import CartEngine


def get_cart_engine(request: Request) -> CartEngine:
    """Engine owned by the application instance (see ``create_app``)."""
    engine = getattr(request.app.state, "cart_engine", None)
    if engine is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Cart engine not configured")
    return engine
