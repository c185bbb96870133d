from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import anyio
from loguru import logger
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.exceptions import TransactionTimeoutError


def _engine_options(db_url: str) -> dict[str, Any]:
    # SQLite uses a static/null pool which rejects pool sizing arguments
    if db_url.startswith("sqlite"):
        return {}
    return {"pool_timeout": settings.transaction_acquire_timeout, "pool_pre_ping": True}


engine = create_async_engine(settings.db_url, **_engine_options(settings.db_url))


async def get_db() -> AsyncGenerator[AsyncSession]:
    async with AsyncSession(
        engine, autocommit=False, autoflush=False, expire_on_commit=False
    ) as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession]:
    """Run the body as one unit of work.

    Commits when the body finishes, rolls back on any exception. The whole body
    is bounded by ``settings.transaction_timeout``; exceeding it rolls back and
    raises TransactionTimeoutError.
    """
    try:
        with anyio.fail_after(settings.transaction_timeout):
            yield session
            await session.commit()
    except TimeoutError:
        await session.rollback()
        logger.warning(f"Transaction exceeded {settings.transaction_timeout}s and was rolled back")
        raise TransactionTimeoutError("操作逾時, 請稍後再試") from None
    except BaseException:
        await session.rollback()
        raise
