"""BoxOffice API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map BoxOfficeError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, HTTP client and payment gateway created in the lifespan, closed on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - One shared httpx.AsyncClient per process: the PayPal token cache lives with it
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boxoffice import __version__
from boxoffice.api.error_handlers import register_error_handlers
from boxoffice.api.routes import discounts, health, inventory, orders, payments, refunds
from boxoffice.config import get_settings
from boxoffice.infrastructure.database import init_db
from boxoffice.infrastructure.observability import setup_logging
from boxoffice.infrastructure.paypal_gateway import PayPalGateway, build_http_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    http = build_http_client(settings)
    app.state.gateway = PayPalGateway.from_settings(http, settings)
    logger.info("BoxOffice API started")
    yield
    logger.info("BoxOffice API shutting down")
    await http.aclose()
    await manager.dispose()


app = FastAPI(
    title="BoxOffice API", version=__version__, lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(orders.router)
app.include_router(payments.router)
app.include_router(discounts.router)
app.include_router(refunds.router)
app.include_router(inventory.router)

register_error_handlers(app)
