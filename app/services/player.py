from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends
from sqlalchemy import update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.db import get_db, transaction
from app.core.enums import EventType
from app.core.exceptions import InsufficientFundsError, NotFoundError
from app.models.event_log import EventLog
from app.models.player import Player
from app.schemas.common import PaginationData


class PlayerService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_players(
        self, *, page: int, page_size: int
    ) -> tuple[Sequence[Player], PaginationData]:
        offset = (page - 1) * page_size

        total_items_result = await self.db.exec(select(Player))
        total_items = len(total_items_result.all())

        result = await self.db.exec(select(Player).offset(offset).limit(page_size))
        players = result.all()

        pagination = PaginationData.for_page(page, page_size, total_items)

        return players, pagination

    async def get_player(self, player_id: int) -> Player | None:
        result = await self.db.exec(
            select(Player).where(Player.id == player_id).execution_options(populate_existing=True)
        )
        return result.first()

    async def get_balance(self, player_id: int) -> int | None:
        result = await self.db.exec(select(Player.coins).where(Player.id == player_id))
        return result.first()

    async def debit_coins(self, player_id: int, amount: int) -> int:
        """Take coins from a player inside the caller's transaction.

        The balance check and the decrement are one conditional UPDATE, so two
        concurrent charges can never drive the balance below zero.

        Returns:
            The balance after the charge.

        Raises:
            NotFoundError: If the player does not exist.
            InsufficientFundsError: If the balance is lower than ``amount``.
        """
        result = await self.db.exec(
            update(Player)
            .where(col(Player.id) == player_id, col(Player.coins) >= amount)
            .values(coins=col(Player.coins) - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
            balance = await self.get_balance(player_id)
            if balance is None:
                msg = "找不到玩家"
                raise NotFoundError(msg)
            msg = f"貨幣不足。目前: {balance}, 需要: {amount}"
            raise InsufficientFundsError(msg)

        return await self._require_balance(player_id)

    async def credit_coins(self, player_id: int, amount: int) -> int:
        """Give coins to a player inside the caller's transaction and return the new balance."""
        result = await self.db.exec(
            update(Player)
            .where(col(Player.id) == player_id)
            .values(coins=col(Player.coins) + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
            msg = "找不到玩家"
            raise NotFoundError(msg)

        return await self._require_balance(player_id)

    async def _require_balance(self, player_id: int) -> int:
        balance = await self.get_balance(player_id)
        if balance is None:
            msg = "找不到玩家"
            raise NotFoundError(msg)
        return balance

    async def _log_currency_event(
        self, player_id: int, event_type: EventType, amount: int, reason: str
    ) -> None:
        """Log a currency event to the event log."""
        event_log = EventLog(
            player_id=player_id, event_type=event_type, context={"amount": amount, "reason": reason}
        )
        self.db.add(event_log)

    async def increase_currency(self, player_id: int, amount: int, reason: str) -> Player:
        """Increase a player's currency and log the event."""
        async with transaction(self.db):
            await self.credit_coins(player_id, amount)
            await self._log_currency_event(
                player_id, EventType.ADMIN_INCREASE_CURRENCY, amount, reason
            )

        return await self._require_player(player_id)

    async def decrease_currency(self, player_id: int, amount: int, reason: str) -> Player:
        """Decrease a player's currency and log the event.

        Raises:
            NotFoundError: If the player does not exist.
            InsufficientFundsError: If the player cannot cover ``amount``.
        """
        async with transaction(self.db):
            await self.debit_coins(player_id, amount)
            await self._log_currency_event(
                player_id, EventType.ADMIN_DECREASE_CURRENCY, amount, reason
            )

        return await self._require_player(player_id)

    async def set_currency(self, player_id: int, amount: int, reason: str) -> Player:
        """Set a player's currency to a specific amount and log the event."""
        async with transaction(self.db):
            old_amount = await self._require_balance(player_id)
            await self.db.exec(
                update(Player)
                .where(col(Player.id) == player_id)
                .values(coins=amount)
                .execution_options(synchronize_session=False)
            )
            await self._log_currency_event(
                player_id,
                EventType.ADMIN_SET_CURRENCY,
                amount,
                f"Set from {old_amount} to {amount}: {reason}",
            )

        return await self._require_player(player_id)

    async def _require_player(self, player_id: int) -> Player:
        player = await self.get_player(player_id)
        if not player:
            msg = "找不到玩家"
            raise NotFoundError(msg)
        return player
