import sqlmodel

from app.core.enums import OrderStatus

from ._base import BaseModel


class Order(BaseModel, table=True):
    """Checkout order. Written by the checkout service; read here to decide if a pull is held."""

    __tablename__: str = "orders"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    player_id: int = sqlmodel.Field(foreign_key="players.id", index=True)
    status: OrderStatus = sqlmodel.Field(default=OrderStatus.PENDING, index=True)


class OrderItem(BaseModel, table=True):
    __tablename__: str = "order_items"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    order_id: int = sqlmodel.Field(foreign_key="orders.id", index=True, ondelete="CASCADE")
    pull_id: int | None = sqlmodel.Field(
        default=None, foreign_key="pulls.id", index=True, ondelete="SET NULL"
    )
