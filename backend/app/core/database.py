from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from backend.app.core.settings import get_settings
from backend.app.core.base import Base  # noqa: F401 - re-exported for scripts

settings = get_settings()


def _engine_options(url: str) -> dict:
    """Pool sizing applies to server databases only; SQLite uses its own pool."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_timeout": 30,
    }


engine = create_async_engine(
    url=settings.db_url,
    echo=False,
    **_engine_options(settings.db_url),
)
async_session = async_sessionmaker(engine, expire_on_commit=False)
