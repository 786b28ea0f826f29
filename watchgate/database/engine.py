from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from watchgate.config.settings import get_settings


def create_app_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for SQLite (aiosqlite) or Postgres (psycopg).

    - SQLite: default pool; the driver serialises access to the file.
    - Postgres: standard pool with pre-ping and LIFO reuse of hot connections.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,  # ~1h
        pool_pre_ping=True,
        pool_use_lifo=True,
        connect_args={"connect_timeout": 10},
    )


@lru_cache
def get_engine() -> AsyncEngine:
    """Get the process-wide engine built from settings."""
    settings = get_settings()
    return create_app_engine(settings.DATABASE_URL, echo=settings.DEBUG)
