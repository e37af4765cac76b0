"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from installment_ledger.api.middleware import MetricsMiddleware, RequestIDMiddleware
from installment_ledger.api.v1 import sales, whatsapp
from installment_ledger.config import settings
from installment_ledger.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Installment Ledger",
        description="Installment sales, payment plans and WhatsApp payment reminders",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
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

    # Register API routers
    app.include_router(sales.router, prefix="/v1", tags=["sales"])
    app.include_router(whatsapp.router, prefix="/v1", tags=["whatsapp"])

    return app


app = create_app()
