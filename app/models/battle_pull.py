from datetime import datetime

import sqlmodel

from app.core.enums import ItemType
from app.utils.misc import get_utc_now

from ._base import BaseModel


class BattlePull(BaseModel, table=True):
    """Historical record of one battle round.

    The item is stored as a snapshot so the history outlives the live Pull;
    ``pull_id`` is cleared when that Pull is sold.
    """

    __tablename__: str = "battle_pulls"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    battle_id: int = sqlmodel.Field(foreign_key="battles.id", index=True, ondelete="CASCADE")
    participant_id: int = sqlmodel.Field(
        foreign_key="battle_participants.id", index=True, ondelete="CASCADE"
    )
    pull_id: int | None = sqlmodel.Field(
        foreign_key="pulls.id",
        unique=True,
        nullable=True,
        default=None,
        ondelete="SET NULL",
    )
    round_number: int = sqlmodel.Field(ge=1)
    coin_value: int = sqlmodel.Field(default=0, ge=0)

    item_type: ItemType
    item_name: str
    item_image: str | None = None
    item_set_name: str | None = None
    item_rarity: str | None = None
    card_id: int | None = sqlmodel.Field(foreign_key="cards.id", nullable=True, default=None)
    sealed_product_id: int | None = sqlmodel.Field(
        foreign_key="sealed_products.id", nullable=True, default=None
    )

    pulled_at: datetime = sqlmodel.Field(
        default_factory=get_utc_now, sa_type=sqlmodel.DateTime(timezone=True)
    )
