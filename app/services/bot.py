from collections.abc import Collection
from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.core.enums import PlayerRole
from app.models.player import Player


class BotService:
    """Hands out synthetic accounts for admin battle simulation."""

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def ensure_bots(self, count: int, exclude_ids: Collection[int] = ()) -> list[Player]:
        """Return ``count`` bot accounts, creating new ones when there are not enough.

        Existing bots are reused oldest first. Runs inside the caller's
        transaction; new bots are flushed so they have ids.
        """
        if count <= 0:
            return []

        stmt = select(Player).where(col(Player.is_bot).is_(True)).order_by(col(Player.id))
        if exclude_ids:
            stmt = stmt.where(col(Player.id).not_in(exclude_ids))
        result = await self.db.exec(stmt.limit(count))
        bots = list(result.all())

        missing = count - len(bots)
        if missing > 0:
            total_bots_result = await self.db.exec(
                select(Player.id).where(col(Player.is_bot).is_(True))
            )
            next_number = len(total_bots_result.all()) + 1
            for offset in range(missing):
                bot = Player(
                    name=f"{settings.bot_name_prefix} {next_number + offset}",
                    role=PlayerRole.BOT,
                    is_bot=True,
                    coins=settings.bot_default_coins,
                )
                self.db.add(bot)
                bots.append(bot)
            await self.db.flush()
            logger.info(f"Created {missing} bot account(s)")

        return bots
