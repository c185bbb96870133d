from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.db import get_db
from app.core.exceptions import NotFoundError
from app.models.box import Box
from app.models.card import Card
from app.models.sealed_product import SealedProduct
from app.schemas.box import CardPoolItem, PoolItemPreview, SealedPoolItem
from app.schemas.common import PaginationData
from app.utils.draw import probabilities

type PoolEntry = CardPoolItem | SealedPoolItem


class BoxService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_boxes(
        self, *, page: int, page_size: int, active_only: bool = True
    ) -> tuple[Sequence[Box], PaginationData]:
        offset = (page - 1) * page_size

        stmt = select(Box)
        if active_only:
            stmt = stmt.where(col(Box.is_active).is_(True))

        total_items_result = await self.db.exec(stmt)
        total_items = len(total_items_result.all())

        result = await self.db.exec(
            stmt.order_by(col(Box.popularity).desc(), col(Box.id)).offset(offset).limit(page_size)
        )
        boxes = result.all()

        pagination = PaginationData.for_page(page, page_size, total_items)

        return boxes, pagination

    async def get_box(self, box_id: int) -> Box | None:
        result = await self.db.exec(
            select(Box).where(Box.id == box_id).execution_options(populate_existing=True)
        )
        return result.first()

    async def require_box(self, box_id: int) -> Box:
        box = await self.get_box(box_id)
        if not box:
            msg = "找不到卡盒"
            raise NotFoundError(msg)
        return box

    async def get_pool(self, box_id: int) -> list[PoolEntry]:
        """Build the drawable pool of a box.

        Cards come first, then sealed products, each in id order. Entries whose
        weight is not positive can never be drawn and are left out.
        """
        cards_result = await self.db.exec(
            select(Card).where(Card.box_id == box_id).order_by(col(Card.id))
        )
        products_result = await self.db.exec(
            select(SealedProduct)
            .where(SealedProduct.box_id == box_id)
            .order_by(col(SealedProduct.id))
        )

        pool: list[PoolEntry] = [
            CardPoolItem(
                item_id=card.id,
                weight=card.pull_rate,
                coin_value=card.coin_value,
                name=card.name,
                image_url=card.image_url,
                set_name=card.set_name,
                rarity=card.rarity,
            )
            for card in cards_result.all()
            if card.pull_rate > 0
        ]
        pool.extend(
            SealedPoolItem(
                item_id=product.id,
                weight=product.pull_rate,
                coin_value=product.coin_value,
                name=product.name,
                image_url=product.image_url,
                set_name=product.set_name,
                product_type=product.product_type,
            )
            for product in products_result.all()
            if product.pull_rate > 0
        )
        return pool

    async def get_pool_preview(self, box_id: int) -> list[PoolItemPreview]:
        """Get the pool of a box with the normalised chance of drawing each entry."""
        await self.require_box(box_id)
        pool = await self.get_pool(box_id)
        return [
            PoolItemPreview(item=item, probability=probability)
            for item, probability in zip(pool, probabilities(pool), strict=True)
        ]
