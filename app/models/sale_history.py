import sqlmodel

from app.core.enums import ItemType

from ._base import BaseModel


class SaleHistory(BaseModel, table=True):
    """Append-only record of a pull converted back into coins."""

    __tablename__: str = "sale_histories"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    player_id: int = sqlmodel.Field(foreign_key="players.id", index=True)
    item_type: ItemType
    item_id: int
    item_name: str
    item_image: str | None = None
    coins_received: int = sqlmodel.Field(ge=0)
