"""Database configuration and setup."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def _serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock when it begins.

    pysqlite defers BEGIN until the first write, so two transactions can both
    read a product's stock before either writes. BEGIN IMMEDIATE makes them
    queue on the database lock instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create async engine."""
    engine = create_async_engine(
        database_url,
        echo=echo,
        future=True,
        pool_pre_ping=True,
    )
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_transactions(engine)
    return engine


def get_session_factory(engine: AsyncEngine):
    """Create async session factory."""
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        future=True,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables on an existing engine."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(database_url: str) -> None:
    """Initialize database and create tables."""
    engine = get_engine(database_url)
    await create_tables(engine)
    await engine.dispose()
