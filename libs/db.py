# backend/libs/db.py
import logging
import os
from typing import AsyncIterator
from urllib.parse import quote_plus

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


def build_database_url() -> str:
    """
    DATABASE_URL wins; otherwise assemble an asyncpg URL from the
    DATABASE_HOST / PORT / USER / PASSWORD / NAME variables.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        # Hosted Postgres hands out sync URLs
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        if url.startswith("postgresql://"):
            url = "postgresql+asyncpg://" + url[len("postgresql://"):]
        return url

    user = os.getenv("DATABASE_USER", "avigate")
    password = quote_plus(os.getenv("DATABASE_PASSWORD", ""))
    host = os.getenv("DATABASE_HOST", "127.0.0.1")
    port = os.getenv("DATABASE_PORT", "5432")
    name = os.getenv("DATABASE_NAME", "avigate")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


def _engine_options(url: str) -> dict:
    options = {"echo": os.getenv("DATABASE_ECHO", "false").lower() == "true"}
    if url.startswith("postgresql"):
        options.update(
            pool_size=int(os.getenv("DATABASE_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
            pool_pre_ping=True,
        )
    return options


DATABASE_URL = build_database_url()

engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped async session; rolled back if the handler raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
