import sqlmodel

from ._base import BaseModel


class CartItem(BaseModel, table=True):
    """Pre-checkout hold on a pull. Managed by the cart service; removed here when the pull is sold."""

    __tablename__: str = "cart_items"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    player_id: int = sqlmodel.Field(foreign_key="players.id", index=True)
    pull_id: int = sqlmodel.Field(foreign_key="pulls.id", unique=True, ondelete="CASCADE")
