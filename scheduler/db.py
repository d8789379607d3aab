from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import os
import logging

from . import config
from .models import Task  # noqa: F401  registers the table on SQLModel.metadata

logger = logging.getLogger(__name__)


def sqlite_path_from_url(url: str | None) -> str | None:
    """Return the absolute file path for a file-backed SQLite URL, else None."""
    if not url:
        return None
    if url.startswith('sqlite+aiosqlite:///'):
        path = url.replace('sqlite+aiosqlite:///', '', 1)
    elif url.startswith('sqlite:///'):
        path = url.replace('sqlite:///', '', 1)
    else:
        return None
    if not path or path == ':memory:':
        return None
    if path.startswith('./'):
        path = path[2:]
    return os.path.abspath(path)


def create_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Build the async engine for ``url`` (defaults to config.DATABASE_URL).

    NullPool gives every session its own aiosqlite connection, which keeps
    SQLite's file locking as the only write serialisation point.
    """
    url = url or config.DATABASE_URL
    db_path = sqlite_path_from_url(url)
    if db_path:
        parent = os.path.dirname(db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
    return create_async_engine(
        url,
        echo=config.SQL_ECHO if echo is None else echo,
        future=True,
        poolclass=NullPool,
    )


def create_sessionmaker(engine: AsyncEngine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create the scheduler table and its date index if they are missing."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
