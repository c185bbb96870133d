from collections.abc import Iterable, Sequence
from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlalchemy import delete, func, update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.db import get_db, transaction
from app.core.enums import (
    BLOCKING_ORDER_STATUSES,
    BattleStatus,
    EventType,
    ItemType,
    SellRejectReason,
)
from app.core.exceptions import NotFoundError, StateConflictError
from app.models.battle import Battle
from app.models.battle_pull import BattlePull
from app.models.card import Card
from app.models.cart_item import CartItem
from app.models.event_log import EventLog
from app.models.order import Order, OrderItem
from app.models.pull import Pull
from app.models.sale_history import SaleHistory
from app.models.sealed_product import SealedProduct
from app.schemas.common import PaginationData
from app.schemas.inventory import BulkSellResult, PullResponse, SellRejection, SellResult
from app.services.player import PlayerService


class InventoryService:
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db)],
        player_service: Annotated[PlayerService, Depends()],
    ) -> None:
        self.db = db
        self.player_service = player_service

    async def _lock_reasons(self, pull_ids: Iterable[int]) -> dict[int, SellRejectReason]:
        """Find which of the given pulls are held by an order or an unfinished battle."""
        ids = list(pull_ids)
        if not ids:
            return {}

        order_result = await self.db.exec(
            select(OrderItem.pull_id)
            .join(Order, col(Order.id) == OrderItem.order_id)
            .where(
                col(OrderItem.pull_id).in_(ids),
                col(Order.status).in_(BLOCKING_ORDER_STATUSES),
            )
        )
        battle_result = await self.db.exec(
            select(BattlePull.pull_id)
            .join(Battle, col(Battle.id) == BattlePull.battle_id)
            .where(col(BattlePull.pull_id).in_(ids), Battle.status != BattleStatus.FINISHED)
        )

        reasons: dict[int, SellRejectReason] = {}
        for pull_id in battle_result.all():
            if pull_id is not None:
                reasons[pull_id] = SellRejectReason.BLOCKED_BY_BATTLE
        # an order hold is reported ahead of a battle hold
        for pull_id in order_result.all():
            if pull_id is not None:
                reasons[pull_id] = SellRejectReason.BLOCKED_BY_ORDER
        return reasons

    async def get_lock_reason(self, pull: Pull) -> SellRejectReason | None:
        reasons = await self._lock_reasons([pull.id])
        return reasons.get(pull.id)

    async def is_sellable(self, pull: Pull) -> bool:
        """Whether a pull may be sold right now.

        A pull is held while any order in PAID, PROCESSING, SHIPPED or DELIVERED
        references it, or while the battle it was drawn in has not finished.
        """
        return await self.get_lock_reason(pull) is None

    async def get_pull(self, pull_id: int) -> Pull | None:
        result = await self.db.exec(
            select(Pull).where(Pull.id == pull_id).execution_options(populate_existing=True)
        )
        return result.first()

    async def get_player_pulls(
        self, player_id: int, *, page: int, page_size: int
    ) -> tuple[list[PullResponse], PaginationData]:
        """Get a page of a player's collection, newest first, with each pull's lock reason."""
        offset = (page - 1) * page_size

        total_items_result = await self.db.exec(select(Pull.id).where(Pull.player_id == player_id))
        total_items = len(total_items_result.all())

        result = await self.db.exec(
            select(Pull, Card, SealedProduct)
            .outerjoin(Card, col(Card.id) == Pull.card_id)
            .outerjoin(SealedProduct, col(SealedProduct.id) == Pull.sealed_product_id)
            .where(Pull.player_id == player_id)
            .order_by(col(Pull.pulled_at).desc(), col(Pull.id).desc())
            .offset(offset)
            .limit(page_size)
        )
        rows = result.all()
        reasons = await self._lock_reasons(pull.id for pull, _, _ in rows)

        pulls: list[PullResponse] = []
        for pull, card, product in rows:
            item = card or product
            pulls.append(
                PullResponse(
                    id=pull.id,
                    box_id=pull.box_id,
                    kind=ItemType.CARD if card else ItemType.SEALED_PRODUCT,
                    item_id=item.id if item else 0,
                    name=item.name if item else "",
                    image_url=item.image_url if item else None,
                    set_name=item.set_name if item else None,
                    rarity=card.rarity if card else None,
                    coin_value=pull.coin_value,
                    pulled_at=pull.pulled_at,
                    lock_reason=reasons.get(pull.id),
                )
            )

        pagination = PaginationData.for_page(page, page_size, total_items)

        return pulls, pagination

    async def get_sales_history(
        self, player_id: int, *, page: int, page_size: int
    ) -> tuple[Sequence[SaleHistory], PaginationData]:
        offset = (page - 1) * page_size

        stmt = select(SaleHistory).where(SaleHistory.player_id == player_id)

        total_items_result = await self.db.exec(stmt)
        total_items = len(total_items_result.all())

        result = await self.db.exec(
            stmt.order_by(col(SaleHistory.created_at).desc(), col(SaleHistory.id).desc())
            .offset(offset)
            .limit(page_size)
        )
        sales = result.all()

        pagination = PaginationData.for_page(page, page_size, total_items)

        return sales, pagination

    async def _sell_one(self, player_id: int, pull_id: int) -> SellResult | SellRejectReason:
        """Sell one pull inside the caller's transaction.

        Returns the sale, or the reason the pull was left alone.
        """
        result = await self.db.exec(
            select(Pull)
            .where(Pull.id == pull_id, Pull.player_id == player_id)
            .execution_options(populate_existing=True)
        )
        pull = result.first()
        if not pull:
            return SellRejectReason.NOT_FOUND

        reason = await self.get_lock_reason(pull)
        if reason is not None:
            return reason

        if pull.card_id is not None:
            item_type = ItemType.CARD
            item: Card | SealedProduct | None = await self.db.get(Card, pull.card_id)
            item_id = pull.card_id
            rarity = item.rarity if isinstance(item, Card) else None
        else:
            item_type = ItemType.SEALED_PRODUCT
            item = await self.db.get(SealedProduct, pull.sealed_product_id)
            item_id = pull.sealed_product_id or 0
            rarity = None
        item_name = item.name if item else f"#{item_id}"
        item_image = item.image_url if item else None
        item_set_name = item.set_name if item else None

        await self.db.exec(
            delete(CartItem)
            .where(col(CartItem.pull_id) == pull_id)
            .execution_options(synchronize_session=False)
        )
        # only non-blocking orders can still reference the pull at this point
        await self.db.exec(
            delete(OrderItem)
            .where(col(OrderItem.pull_id) == pull_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.exec(
            update(BattlePull)
            .where(col(BattlePull.pull_id) == pull_id)
            .values(
                pull_id=None,
                item_name=func.coalesce(col(BattlePull.item_name), item_name),
                item_image=func.coalesce(col(BattlePull.item_image), item_image),
                item_set_name=func.coalesce(col(BattlePull.item_set_name), item_set_name),
                item_rarity=func.coalesce(col(BattlePull.item_rarity), rarity),
            )
            .execution_options(synchronize_session=False)
        )

        deleted = await self.db.exec(
            delete(Pull)
            .where(col(Pull.id) == pull_id, col(Pull.player_id) == player_id)
            .execution_options(synchronize_session=False)
        )
        if deleted.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
            return SellRejectReason.NOT_FOUND
        self.db.expunge(pull)

        balance = await self.player_service.credit_coins(player_id, pull.coin_value)

        self.db.add(
            SaleHistory(
                player_id=player_id,
                item_type=item_type,
                item_id=item_id,
                item_name=item_name,
                item_image=item_image,
                coins_received=pull.coin_value,
            )
        )
        self.db.add(
            EventLog(
                player_id=player_id,
                event_type=EventType.SELL_ITEM,
                context={
                    "pull_id": pull_id,
                    "item_type": item_type,
                    "item_id": item_id,
                    "item_name": item_name,
                    "coins_received": pull.coin_value,
                },
            )
        )

        return SellResult(
            pull_id=pull_id,
            item_name=item_name,
            coins_received=pull.coin_value,
            new_currency_balance=balance,
        )

    async def sell_pull(self, player_id: int, pull_id: int) -> SellResult:
        """Sell a pull back for the coin value recorded when it was drawn.

        Args:
            player_id: The player's ID
            pull_id: The pull to sell

        Returns:
            SellResult with the coins received and the new balance

        Raises:
            NotFoundError: If the pull does not exist or belongs to someone else.
            StateConflictError: If an order or an unfinished battle holds the pull.
        """
        async with transaction(self.db):
            outcome = await self._sell_one(player_id, pull_id)
            if not isinstance(outcome, SellResult):
                raise _rejection_error(outcome)

        logger.info(
            f"Player {player_id} sold pull {pull_id} ({outcome.item_name}) "
            f"for {outcome.coins_received} coins"
        )
        return outcome

    async def sell_pulls(self, player_id: int, pull_ids: Sequence[int]) -> BulkSellResult:
        """Sell several pulls at once.

        Pulls that cannot be sold are reported with a reason instead of failing
        the whole batch. Duplicate ids are sold once.
        """
        sold: list[SellResult] = []
        rejected: list[SellRejection] = []

        async with transaction(self.db):
            for pull_id in dict.fromkeys(pull_ids):
                outcome = await self._sell_one(player_id, pull_id)
                if isinstance(outcome, SellResult):
                    sold.append(outcome)
                else:
                    rejected.append(SellRejection(pull_id=pull_id, reason=outcome))

            balance = await self.player_service.get_balance(player_id)
            if balance is None:
                msg = "找不到玩家"
                raise NotFoundError(msg)

        coins_received = sum(sale.coins_received for sale in sold)
        logger.info(
            f"Player {player_id} bulk sold {len(sold)} pull(s) for {coins_received} coins, "
            f"{len(rejected)} rejected"
        )
        if rejected:
            logger.debug(f"Rejected pulls for player {player_id}: {rejected}")

        return BulkSellResult(
            sold=sold,
            rejected=rejected,
            coins_received=coins_received,
            new_currency_balance=balance,
        )


def _rejection_error(reason: SellRejectReason) -> NotFoundError | StateConflictError:
    if reason == SellRejectReason.BLOCKED_BY_ORDER:
        return StateConflictError("此卡片已在訂單中, 無法出售")
    if reason == SellRejectReason.BLOCKED_BY_BATTLE:
        return StateConflictError("此卡片正在對戰中, 無法出售")
    return NotFoundError("找不到此卡片")
