import sqlmodel

from ._base import BaseModel


class Card(BaseModel, table=True):
    __tablename__: str = "cards"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    box_id: int = sqlmodel.Field(foreign_key="boxes.id", index=True)
    name: str = sqlmodel.Field(max_length=200, index=True)
    set_name: str | None = None
    rarity: str | None = None
    image_url: str | None = None
    pull_rate: float = sqlmodel.Field(default=0.0, ge=0.0)
    """Relative weight inside the box, normalised against the pool total when drawing"""
    coin_value: int = sqlmodel.Field(default=1, ge=0)

    def __str__(self) -> str:
        return f"{self.name} (#{self.id})"
