from __future__ import annotations
import asyncio
import logging
from typing import AsyncGenerator, Awaitable, TypeVar
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .core.config import get_settings
from .core.errors import StoreUnavailable
from .models import Base

settings = get_settings()
logger = logging.getLogger(__name__)
engine = create_async_engine(settings.database_url, echo=False, future=True)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

T = TypeVar("T")

async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session

async def store_call(aw: Awaitable[T], *, what: str = "store call") -> T:
    """Await a store operation under the configured timeout.

    Timeouts and connection-level failures become StoreUnavailable so callers
    can report a retryable error; anything else propagates unchanged.
    """
    try:
        return await asyncio.wait_for(aw, timeout=settings.store_timeout_seconds)
    except asyncio.TimeoutError:
        logger.error("%s timed out after %.1fs", what, settings.store_timeout_seconds)
        raise StoreUnavailable()
    except (OperationalError, InterfaceError, OSError) as e:
        logger.error("%s failed: %s", what, e)
        raise StoreUnavailable()
