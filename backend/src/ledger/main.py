"""FastAPI application: middleware, error envelopes and the v1 routers."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from ledger.api.errors import register_exception_handlers
from ledger.api.v1 import balance, cron, health, invoices, orders, plans, stock, stock_sources, subscriptions
from ledger.config import settings
from ledger.middleware.logging import LoggingMiddleware, setup_logging
from ledger.middleware.metrics import MetricsMiddleware

setup_logging()
logger = structlog.get_logger(__name__)

API_VERSION = health.VERSION


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("application_starting", env=settings.app_env, version=API_VERSION)
    yield
    logger.info("application_shutting_down")


app = FastAPI(
    title="Creative Studio Ledger",
    description="Points balances, monthly plans and stock asset orders",
    version=API_VERSION,
    lifespan=lifespan,
)

# Last added runs first: request ids are bound before metrics and CORS see the request
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

register_exception_handlers(app)

app.mount("/metrics", make_asgi_app())

app.include_router(health.router)
for module in (plans, subscriptions, invoices, cron, balance, orders, stock_sources, stock):
    app.include_router(module.router, prefix="/v1")


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Service name, version and where the docs live."""
    return {
        "service": f"{settings.company_name} Ledger",
        "version": API_VERSION,
        "status": "operational",
        "docs": "/docs",
    }
