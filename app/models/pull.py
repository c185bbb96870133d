from datetime import datetime

import sqlmodel

from app.utils.misc import get_utc_now

from ._base import BaseModel


class Pull(BaseModel, table=True):
    """One drawn item owned by a player. Created by a draw, destroyed by a sale."""

    __tablename__: str = "pulls"
    __table_args__ = (
        sqlmodel.CheckConstraint(
            "(card_id IS NULL) <> (sealed_product_id IS NULL)",
            name="card_xor_sealed_product",
        ),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    player_id: int = sqlmodel.Field(foreign_key="players.id", index=True)
    box_id: int = sqlmodel.Field(foreign_key="boxes.id", index=True)
    card_id: int | None = sqlmodel.Field(
        foreign_key="cards.id", index=True, nullable=True, default=None
    )
    sealed_product_id: int | None = sqlmodel.Field(
        foreign_key="sealed_products.id", index=True, nullable=True, default=None
    )
    coin_value: int = sqlmodel.Field(default=1, ge=0)
    """Sale value recorded at draw time"""
    pulled_at: datetime = sqlmodel.Field(
        default_factory=get_utc_now, sa_type=sqlmodel.DateTime(timezone=True)
    )
