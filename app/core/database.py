from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from app.core.config import settings

# Base class for models
Base = declarative_base()


def _install_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[arg-type]
        cursor = dbapi_connection.cursor()
        pragmas = (
            text("PRAGMA foreign_keys=ON"),
            text("PRAGMA busy_timeout=5000"),
        )
        for pragma in pragmas:
            cursor.execute(pragma.text)
        cursor.close()


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine, pinning in-memory sqlite to a single connection."""
    url = make_url(database_url)
    options: dict = {"echo": echo, "future": True}

    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}

    engine = create_async_engine(database_url, **options)
    if url.get_backend_name() == "sqlite":
        _install_sqlite_pragmas(engine)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = build_session_factory(engine)


async def get_db():
    """Dependency for getting database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create all tables on the given engine (defaults to the app engine)."""
    import app.domain.models  # noqa: F401  registers every mapped class

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
