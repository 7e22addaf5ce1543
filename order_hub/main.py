import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from order_hub.config import Settings, settings as default_settings
from order_hub.database import build_engine, build_sessionmaker, create_tables
from order_hub.middleware.metrics import MetricsMiddleware
from order_hub.middleware.request_id import RequestIDMiddleware
from order_hub.routers import orders, products, realtime
from order_hub.services.catalog_broadcast import CatalogBroadcaster
from order_hub.services.event_hub import EventHub
from order_hub.services.order_service import OrderLifecycle
from shared.errors import (
    InvalidTransitionError,
    NotFoundError,
    OrderHubError,
    StockExhaustedError,
    ValidationError,
)
from shared.logging_config import setup_logging
from shared.tracing import setup_tracing

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StockExhaustedError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
}


async def _domain_error_handler(request: Request, exc: OrderHubError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level, service_name="order-hub")
    tracing = setup_tracing("order-hub", settings.otlp_endpoint)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up, creating database tables")
        engine = build_engine(settings.database_url)
        await create_tables(engine)
        if tracing:
            SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

        sessions = build_sessionmaker(engine)
        hub = EventHub()
        broadcaster = CatalogBroadcaster(hub, sessions)
        app.state.settings = settings
        app.state.sessions = sessions
        app.state.hub = hub
        app.state.broadcaster = broadcaster
        app.state.lifecycle = OrderLifecycle(sessions, hub, broadcaster)
        logger.info("Startup complete")

        yield

        await engine.dispose()
        logger.info("Shutting down")

    app = FastAPI(
        title="Order Hub",
        description="Real-time order taking and kitchen fulfillment",
        version="1.0.0",
        lifespan=lifespan,
    )

    if tracing:
        FastAPIInstrumentor.instrument_app(app)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(OrderHubError, _domain_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(products.router, prefix="/api/products", tags=["products"])
    app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
    app.include_router(realtime.router, tags=["realtime"])

    # Expose Prometheus metrics at /metrics
    app.mount("/metrics", make_asgi_app())

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
