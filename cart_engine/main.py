# cart_engine/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from cart_engine.api.error_handlers import register_exception_handlers
from cart_engine.api.routers import abandonment, cart
from cart_engine.core.config import settings
from cart_engine.core.logging import setup_logging
from cart_engine.core.metrics import export_metrics
from cart_engine.middleware import ObservabilityMiddleware

# --- Models registration (needed for metadata / Alembic) ---
import cart_engine.models.cart      # noqa: F401
import cart_engine.models.product   # noqa: F401

setup_logging()

TAGS_METADATA = [
    {"name": "cart", "description": "Carts for users and guests: items, coupons, totals and checkout checks."},
    {"name": "abandonment", "description": "Abandoned cart tracking and recovery analytics."},
]

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    description=(
        "Cart pricing, validation and lifecycle engine.\n\n"
        "- **Cart**: get-or-create, items, save-for-later, shipping address, merge and conversion.\n"
        "- **Pricing**: subtotal, tax and shipping per destination country, coupons.\n"
        "- **Checkout**: validation report with errors and warnings.\n"
        "- **Abandonment**: recovery tracking and analytics."
    ),
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# --- Middlewares ---
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# --- Routers ---
app.include_router(cart.router, prefix=settings.API_V1_STR)
app.include_router(abandonment.router, prefix=settings.API_V1_STR)


@app.get("/metrics", include_in_schema=False)
def metrics():
    payload, content_type = export_metrics()
    return Response(content=payload, media_type=content_type)


@app.get("/", include_in_schema=False)
def root():
    return {"status": "ok", "docs_url": "/docs", "redoc_url": "/redoc"}
