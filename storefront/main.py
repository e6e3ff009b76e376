"""Main application entry point."""
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional, Sequence

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import redis
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor

from storefront.config import (
    API_VERSION,
    FULFILLMENT_STEP_DELAYS,
    REDIS_URL,
    STORE_NAMESPACE,
    TELEMETRY_ENABLED
)
from storefront.database import init_db, engine
from storefront.logging_config import setup_logging
from storefront.monitoring import init_profiling
from storefront.routers import cart, orders, products
from storefront.services.fulfillment_service import FulfillmentScheduler
from storefront.state_store import StateStore

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Seeds the catalog, starts the fulfillment scheduler and resumes every
    batch whose sequence was interrupted. On shutdown the timers are
    cancelled; their progress stays persisted for the next start.
    """
    logger.info("Starting application...")

    init_db()

    if TELEMETRY_ENABLED:
        RedisInstrumentor().instrument(redis_client=app.state.redis_client)

    scheduler = FulfillmentScheduler(
        app.state.store,
        step_delays=app.state.step_delays,
        clock=app.state.clock
    )
    app.state.scheduler = scheduler
    resumed = scheduler.resume()
    logger.info("Fulfillment scheduler started", extra={"resumed_batches": resumed})

    init_profiling()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    cancelled = scheduler.cancel_all()
    logger.info("Application shutdown complete", extra={"cancelled_timers": cancelled})


def create_app(
    redis_client: Optional[redis.Redis] = None,
    namespace: str = STORE_NAMESPACE,
    step_delays: Sequence[float] = FULFILLMENT_STEP_DELAYS,
    clock: Callable[[], float] = time.time
) -> FastAPI:
    """
    Build the storefront application.

    Args:
        redis_client: Client for the state store; built from REDIS_URL when omitted
        namespace: Key prefix of the state store
        step_delays: Seconds spent in each non-terminal fulfillment status
        clock: Wall-clock source for order ids and fulfillment due times
    """
    if redis_client is None:
        redis_client = redis.from_url(REDIS_URL, decode_responses=True)

    app = FastAPI(
        title="Storefront Service",
        version=API_VERSION,
        lifespan=lifespan
    )
    app.state.redis_client = redis_client
    app.state.store = StateStore(redis_client, namespace=namespace)
    app.state.step_delays = tuple(step_delays)
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if TELEMETRY_ENABLED:
        FastAPIInstrumentor.instrument_app(app)
        SQLAlchemyInstrumentor().instrument(engine=engine)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(products.router)
    app.include_router(cart.router)
    app.include_router(orders.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
