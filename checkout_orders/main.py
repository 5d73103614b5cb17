"""
Checkout Orders Service

Turns completed Stripe payments into Shopify orders and keeps a local
record of each one. Optionally backfills local records for Shopify orders
the inline write missed.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .backfill import OrderBackfill
from .config import Config, get_config
from .database import init_db, session_factory
from .errors import OrderCreationError
from .logs import log_step, setup_logging
from .models import CreateOrderRequest, CreateOrderResponse, ErrorResponse
from .order_processor import OrderProcessor
from .order_store import OrderStore
from .shopify_client import ShopifyClient
from .stripe_client import StripeClient

logger = logging.getLogger(__name__)


def _store(config: Config) -> OrderStore:
    init_db(config.DATABASE_URL, config.DB_AUTO_CREATE)
    return OrderStore(session_factory(config.DATABASE_URL))


def get_processor() -> OrderProcessor:
    """Build a processor from current configuration; missing secrets are fatal."""
    config = get_config().require()
    return OrderProcessor(
        config=config,
        payments=StripeClient(config),
        shopify=ShopifyClient(config),
        store=_store(config),
    )


def get_backfill() -> OrderBackfill:
    config = get_config().require()
    return OrderBackfill(config, ShopifyClient(config), _store(config))


async def poll_loop(interval_seconds: int):
    """Background task that runs the backfill periodically."""
    while True:
        try:
            result = await run_in_threadpool(lambda: get_backfill().run())
            logger.info("Backfill complete: %s new records", result["records_backfilled"])
        except Exception as e:
            logger.error("Backfill error: %s", e)

        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    config = get_config()
    setup_logging(config.LOG_LEVEL)
    logger.info("Checkout orders service starting up")

    missing = config.validate_required_config()
    if missing:
        logger.warning("Configuration incomplete, orders will fail until set: %s", ", ".join(missing))

    sync_task: Optional[asyncio.Task] = None
    if config.BACKFILL_INTERVAL_SECONDS > 0 and not missing:
        sync_task = asyncio.create_task(poll_loop(config.BACKFILL_INTERVAL_SECONDS))
        logger.info("Started backfill every %s seconds", config.BACKFILL_INTERVAL_SECONDS)

    yield

    if sync_task:
        sync_task.cancel()
        try:
            await sync_task
        except asyncio.CancelledError:
            pass

    logger.info("Shutdown complete")


app = FastAPI(
    title="Checkout Orders Service",
    description="Creates Shopify orders from completed Stripe payments",
    version="1.0.0",
    lifespan=lifespan,
)

# The checkout UI calls this service from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content=ErrorResponse(error=message).model_dump())


# ============================================
# API Endpoints
# ============================================

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/status")
def status():
    """Configuration summary and Stripe connectivity."""
    config = get_config()
    stripe_ok = bool(config.STRIPE_SECRET_KEY) and StripeClient(config).test_connection()
    return {
        "stripe_connected": stripe_ok,
        "missing_config": config.validate_required_config(),
        "config": config.get_config_summary(),
    }


@app.post(
    "/create-shopify-order",
    response_model=CreateOrderResponse,
    response_model_exclude_none=True,
    responses={500: {"model": ErrorResponse}},
)
def create_shopify_order(payload: CreateOrderRequest):
    """Create the Shopify order for a completed payment."""
    try:
        return get_processor().create_order(payload)
    except OrderCreationError as e:
        log_step(logger, "=== CRITICAL ERROR ===", level=logging.ERROR, error=str(e))
        return _error(str(e))
    except Exception as e:
        logger.exception("Unexpected error creating Shopify order")
        return _error(str(e))


@app.post("/sync")
def trigger_sync():
    """Manually trigger a backfill."""
    try:
        return get_backfill().run()
    except OrderCreationError as e:
        return _error(str(e))
    except Exception as e:
        logger.exception("Backfill failed")
        return _error(f"Backfill failed: {e}")


# ============================================
# Run Server
# ============================================

if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(
        "checkout_orders.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )
