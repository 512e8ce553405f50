"""
Database Module

Async SQLAlchemy engine and session factory.

The configured DATABASE_URL is normalized to an async driver:
postgresql:// becomes postgresql+asyncpg:// and sslmode is rewritten to
the ssl parameter asyncpg understands.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from config.settings import settings
from utils.logging import get_logger

logger = get_logger(__name__)


def normalize_database_url(url: str) -> str:
    """Rewrite a sync PostgreSQL URL into its asyncpg form."""
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    # asyncpg expects 'ssl' not 'sslmode' in query
    if "sslmode=" in url:
        url = url.replace("sslmode=require", "ssl=require")
        url = url.replace("sslmode=verify-full", "ssl=verify-full")

    return url


DATABASE_URL = normalize_database_url(settings.DATABASE_URL)

_engine_options = {"echo": settings.DATABASE_ECHO}
if not DATABASE_URL.startswith("sqlite"):
    _engine_options.update(pool_pre_ping=True, pool_recycle=300)

engine = create_async_engine(DATABASE_URL, **_engine_options)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


async def get_db():
    async with SessionLocal() as session:
        yield session


async def check_database_health() -> bool:
    """Run a trivial query to verify connectivity."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
