# app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import register_exception_handlers
from app.api.routers import cart
from app.core.config import Settings, settings
from app.core.logging import setup_logging
from app.middleware import ObservabilityMiddleware
from app.services.cart_engine import CartEngine

# --- Metadatos de la API para la documentación ---
TAGS_METADATA = [
    {"name": "cart", "description": "Carrito del storefront: items, guardados, cupón, envío y totales."},
]


def create_app(engine: CartEngine | None = None, config: Settings = settings) -> FastAPI:
    """Build the API around one cart engine instance."""
    setup_logging(config.LOG_LEVEL)

    app = FastAPI(
        title=config.PROJECT_NAME,
        version="0.1.0",
        description=(
            "API del carrito del storefront.\n\n"
            "- **Items**: alta, cantidades (tope por producto) y baja.\n"
            "- **Guardados**: mover items entre el carrito y 'guardar para después'.\n"
            "- **Totales**: subtotal, cupón, envío gratis por umbral e impuestos."
        ),
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    if engine is None:
        engine = CartEngine.from_settings(config)
        engine.init()
    app.state.cart_engine = engine

    # --- Middlewares ---
    app.add_middleware(ObservabilityMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Ajustar en producción para mayor seguridad
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # --- Routers ---
    app.include_router(cart.router, prefix=config.API_V1_STR)

    # --- Endpoint raíz ---
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok", "docs_url": "/docs", "cart_id": app.state.cart_engine.cart_id}

    return app


app = create_app()
