# app/main.py

import logging
import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.core.config import get_settings
from app.core.enums import ProviderKey
from app.core.logging_config import configure_logging
from app.database import async_session
from app.routes import health, orders, quotes, rate_limiter, websockets as websocket_router
from app.services.container import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    # Run migrations on startup
    if os.getenv('RUN_MIGRATIONS', 'false').lower() == 'true':
        logger.info("Running database migrations...")
        result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
        if result.returncode == 0:
            logger.info("Migrations completed successfully")
        else:
            logger.error(f"Migration failed: {result.stderr}")

    app.state.services = build_services(settings, async_session)

    try:
        await app.state.services.partner_store.ensure_partners(k.value for k in ProviderKey)
    except Exception as e:
        # Partners are also registered lazily on first order
        logger.error(f"Could not register logistics partners at startup: {e}")

    yield

    # Let queued websocket events finish before the loop goes away
    await app.state.services.notifier.drain()

app = FastAPI(
    title="Parcel Broker",
    lifespan=lifespan
)

# Add middleware to handle HTTPS behind proxy
@app.middleware("http")
async def proxy_headers_middleware(request: Request, call_next):
    forwarded_proto = request.headers.get("x-forwarded-proto")
    if forwarded_proto == "https":
        request.scope["scheme"] = "https"
    response = await call_next(request)
    return response

app.include_router(quotes.router)
app.include_router(orders.router)
app.include_router(rate_limiter.router)
app.include_router(websocket_router.router)
app.include_router(health.router)
