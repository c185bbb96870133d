import sqlmodel

from app.core.enums import PlayerRole

from ._base import BaseModel


class Player(BaseModel, table=True):
    __tablename__: str = "players"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    name: str | None = sqlmodel.Field(default=None, nullable=True)
    role: PlayerRole = PlayerRole.USER
    is_bot: bool = sqlmodel.Field(default=False, index=True)
    """Synthetic account used only by admin battle simulation"""
    coins: int = sqlmodel.Field(default=0, ge=0)

    @property
    def is_admin(self) -> bool:
        return self.role == PlayerRole.ADMIN
