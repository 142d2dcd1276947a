import json

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from libs.common.config import get_settings

settings = get_settings()


def json_serializer(value) -> str:
    """Keep Vietnamese text readable in JSON columns so tag lookups match it."""
    return json.dumps(value, ensure_ascii=False)


def engine_kwargs(database_url: str) -> dict:
    """Pool settings apply to server databases only; SQLite keeps driver defaults."""
    kwargs = {
        "echo": settings.DB_ECHO,
        "future": True,
        "json_serializer": json_serializer,
    }
    if not database_url.startswith("sqlite"):
        kwargs.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
        )
    return kwargs


engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)
