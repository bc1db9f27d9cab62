"""FastAPI application factory"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from cardpay_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from cardpay_gateway.api.v1 import cards, payments, webhooks
from cardpay_gateway.infrastructure.database.session import init_db
from cardpay_gateway.infrastructure.observability.logging import setup_logging
from cardpay_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_schema:
        init_db()
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="CardPay Settlement Gateway",
        description="Credit card payment creation and statement settlement service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers; webhook before the payment detail routes
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(cards.router, prefix="/v1", tags=["cards"])

    return app


app = create_app()
