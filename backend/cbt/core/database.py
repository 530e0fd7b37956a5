from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
import logging

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, **kwargs):
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False, **kwargs)

    return create_async_engine(
        database_url,
        pool_size=20,
        max_overflow=40,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_timeout=20,
        echo=False,
        connect_args={
            "server_settings": {
                "application_name": "cbt_engine"
            }
        },
        **kwargs
    )


def build_session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_engine = build_engine(settings.database_url)
AsyncSessionLocal = build_session_factory(async_engine)

Base = declarative_base()


async def create_db_and_tables(engine=None):
    engine = engine or async_engine
    # Register every mapped table on Base.metadata
    from .. import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    logger.info("Database tables created successfully")
