from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlalchemy import update
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.db import get_db, transaction
from app.core.enums import EventType, ItemType
from app.core.exceptions import EmptyPoolError, InvalidQuantityError, StateConflictError
from app.models.box import Box
from app.models.event_log import EventLog
from app.models.pull import Pull
from app.schemas.box import CardPoolItem, PackItem, PackOpenResponse, SealedPoolItem
from app.services.box import BoxService
from app.services.player import PlayerService
from app.utils.draw import RandomSource, draw

ALLOWED_PACK_QUANTITIES = frozenset({1, 2, 3, 4, 5})


class PackService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db)],
        box_service: Annotated[BoxService, Depends()],
        player_service: Annotated[PlayerService, Depends()],
    ) -> None:
        self.db = db
        self.box_service = box_service
        self.player_service = player_service
        self.rng: RandomSource | None = None

    async def get_drawable_pool(self, box: Box) -> list[CardPoolItem | SealedPoolItem]:
        """Get the pool of an active box, refusing boxes nothing can be drawn from."""
        if not box.is_active:
            msg = "此卡盒目前未開放"
            raise StateConflictError(msg)

        pool = await self.box_service.get_pool(box.id)
        if not pool:
            msg = "此卡盒沒有可抽取的物品"
            raise EmptyPoolError(msg)
        return pool

    async def record_pull(
        self, player_id: int, box_id: int, item: CardPoolItem | SealedPoolItem
    ) -> Pull:
        """Insert the Pull for a drawn item and flush it so it gets an id."""
        pull = Pull(
            player_id=player_id,
            box_id=box_id,
            card_id=item.item_id if item.kind == ItemType.CARD else None,
            sealed_product_id=item.item_id if item.kind == ItemType.SEALED_PRODUCT else None,
            coin_value=item.coin_value,
        )
        self.db.add(pull)
        await self.db.flush()
        return pull

    def draw_item(
        self, pool: Sequence[CardPoolItem | SealedPoolItem]
    ) -> CardPoolItem | SealedPoolItem:
        return draw(pool, self.rng)

    async def open_packs(self, player_id: int, box_id: int, quantity: int) -> PackOpenResponse:
        """Open one or more packs of a box for a player.

        The charge, the popularity bump and every Pull are committed together;
        any failure leaves the balance and the collection untouched.

        Args:
            player_id: ID of the player paying for the packs
            box_id: ID of the box to open
            quantity: Number of packs, one of 1 to 5

        Raises:
            InvalidQuantityError: If ``quantity`` is not an allowed pack count.
            NotFoundError: If the box or the player does not exist.
            StateConflictError: If the box is not active.
            EmptyPoolError: If the box has nothing that can be drawn.
            InsufficientFundsError: If the player cannot pay ``price * quantity``.
        """
        if quantity not in ALLOWED_PACK_QUANTITIES:
            msg = f"開包數量必須為 1 到 5, 收到: {quantity}"
            raise InvalidQuantityError(msg)

        async with transaction(self.db):
            box = await self.box_service.require_box(box_id)
            pool = await self.get_drawable_pool(box)

            total_cost = box.price * quantity
            balance = await self.player_service.debit_coins(player_id, total_cost)

            await self.db.exec(
                update(Box)
                .where(col(Box.id) == box_id)
                .values(popularity=col(Box.popularity) + quantity)
                .execution_options(synchronize_session=False)
            )

            items: list[PackItem] = []
            for _ in range(box.cards_per_pack * quantity):
                item = self.draw_item(pool)
                pull = await self.record_pull(player_id, box_id, item)
                items.append(PackItem.from_pool_item(pull.id, item))

            self.db.add(
                EventLog(
                    player_id=player_id,
                    event_type=EventType.PACK_OPEN,
                    context={
                        "box_id": box_id,
                        "quantity": quantity,
                        "total_cost": total_cost,
                        "pull_ids": [item.pull_id for item in items],
                    },
                )
            )

        logger.info(
            f"Player {player_id} opened {quantity} pack(s) of box {box_id}: "
            f"{len(items)} item(s) for {total_cost} coins"
        )

        return PackOpenResponse(
            items=items,
            balance=balance,
            packs_opened=quantity,
            total_cost=total_cost,
            cards_per_pack=box.cards_per_pack,
        )
