"""hilo-idgen — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from idgen.adapters.persistence.database import async_session_factory, engine
from idgen.adapters.persistence.repositories import SqlCounterStore
from idgen.application.ports.counter_store import CounterStore
from idgen.application.use_cases.allocator_registry import AllocatorRegistry
from idgen.config import Settings, settings
from idgen.infrastructure.api.routes_health import router as health_router
from idgen.infrastructure.api.routes_ids import router as ids_router

logger = logging.getLogger(__name__)


def create_app(
    store: CounterStore | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    app_settings = app_settings or settings
    logging.basicConfig(
        level=logging.DEBUG if app_settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        try:
            async with engine.begin():
                pass  # Connection pool warmed up
            logger.info("Database connection established")
        except Exception as e:
            logger.warning("Database not available on startup: %s", e)
        yield
        await engine.dispose()

    app = FastAPI(
        title="hilo-idgen",
        description="Buffered hi-lo integer id allocation with rent/commit/release",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.registry = AllocatorRegistry(
        store or SqlCounterStore(async_session_factory), app_settings
    )

    app.include_router(health_router, prefix="/api")
    app.include_router(ids_router, prefix="/api")

    return app


app = create_app()
