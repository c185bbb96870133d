from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import ItemType


class _PoolItemBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: int
    weight: float
    coin_value: int
    name: str
    image_url: str | None = None
    set_name: str | None = None


class CardPoolItem(_PoolItemBase):
    kind: Literal[ItemType.CARD] = ItemType.CARD
    rarity: str | None = None


class SealedPoolItem(_PoolItemBase):
    kind: Literal[ItemType.SEALED_PRODUCT] = ItemType.SEALED_PRODUCT
    product_type: str | None = None


PoolItem = Annotated[CardPoolItem | SealedPoolItem, Field(discriminator="kind")]
"""A drawable entry of a box, whichever table it came from."""


def pool_item_rarity(item: CardPoolItem | SealedPoolItem) -> str | None:
    return item.rarity if isinstance(item, CardPoolItem) else None


class PoolItemPreview(BaseModel):
    """Pool entry with its normalised chance of being drawn."""

    item: PoolItem
    probability: float


class PackOpenRequest(BaseModel):
    box_id: int
    quantity: int = Field(default=1, description="Number of packs to open (1-5)")


class PackItem(BaseModel):
    """One drawn item as shown to the player."""

    pull_id: int
    kind: ItemType
    item_id: int
    name: str
    image_url: str | None
    set_name: str | None
    rarity: str | None
    coin_value: int
    weight: float

    @classmethod
    def from_pool_item(cls, pull_id: int, item: CardPoolItem | SealedPoolItem) -> "PackItem":
        return cls(
            pull_id=pull_id,
            kind=item.kind,
            item_id=item.item_id,
            name=item.name,
            image_url=item.image_url,
            set_name=item.set_name,
            rarity=pool_item_rarity(item),
            coin_value=item.coin_value,
            weight=item.weight,
        )


class PackOpenResponse(BaseModel):
    items: list[PackItem]
    balance: int
    packs_opened: int
    total_cost: int
    cards_per_pack: int

