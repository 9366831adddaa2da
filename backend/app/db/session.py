"""
Database session configuration.

One async engine per process. PostgreSQL (asyncpg) in deployments; a SQLite
URL (aiosqlite) is accepted for local runs, without the pool sizing options
that only apply to a server database.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings


def build_engine(database_url: str = None) -> AsyncEngine:
    url = database_url or settings.database_url
    options = {"echo": settings.db_echo}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
        options["pool_pre_ping"] = True
    return create_async_engine(url, **options)


engine = build_engine()

# Loads stay readable after commit; every service re-reads before writing
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    A request that ends with an open transaction (a read, or an error the
    handler already rendered) is rolled back when the session closes.
    """
    async with AsyncSessionLocal() as session:
        yield session
