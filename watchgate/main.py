import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import timedelta

from dotenv import load_dotenv


# Load .env before settings are read
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.exc import OperationalError

from .config.logging import setup_logging
from .config.settings import Settings, get_settings
from .database import create_all_tables, create_app_engine, create_session_maker
from .middleware.error_handlers import register_error_handlers
from .progress.protocols import ReportingProgressStore
from .progress.router import router as progress_router
from .progress.service import ProgressService
from .progress.sql_store import SqlProgressStore
from .tracking.policy import TrackingPolicy


logger = logging.getLogger(__name__)


def _build_lifespan(
    settings: Settings,
    store: ReportingProgressStore | None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    policy = TrackingPolicy.from_settings(settings)
    active_window = timedelta(days=settings.ACTIVE_LEARNER_WINDOW_DAYS)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events."""
        setup_logging(settings.LOG_LEVEL)

        if store is not None:
            app.state.progress_service = ProgressService(store, policy, active_window=active_window)
            yield
            return

        engine = create_app_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        try:
            await create_all_tables(engine)
        except OperationalError:
            logger.exception("Database initialization failed")
            await engine.dispose()
            raise
        logger.info("Database initialization completed successfully")

        sql_store = SqlProgressStore(
            create_session_maker(engine),
            unlock_threshold=policy.unlock_threshold,
            milestone_thresholds=policy.milestone_thresholds,
            poll_interval_seconds=settings.SUBSCRIPTION_POLL_SECONDS,
        )
        app.state.progress_service = ProgressService(sql_store, policy, active_window=active_window)

        yield

        logger.info("Starting graceful shutdown...")
        await sql_store.close()
        await engine.dispose()
        logger.info("Database engine disposed successfully")

    return lifespan


def create_app(settings: Settings | None = None, store: ReportingProgressStore | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    ``store`` replaces the SQL-backed store, e.g. with an in-memory one.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Watchgate API",
        description="Watch progress tracking and activity unlocking",
        version="0.1.0",
        debug=settings.DEBUG,
        lifespan=_build_lifespan(settings, store),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    register_error_handlers(app)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Check application health status."""
        return {"status": "healthy"}

    app.include_router(progress_router)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=get_settings().API_PORT)
