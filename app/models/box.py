import sqlmodel

from ._base import BaseModel


class Box(BaseModel, table=True):
    """A pack configuration: price, pack size and a weighted pool of cards and sealed products."""

    __tablename__: str = "boxes"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    name: str = sqlmodel.Field(max_length=100, index=True)
    description: str = ""
    image_url: str | None = None
    price: int = sqlmodel.Field(ge=0)
    cards_per_pack: int = sqlmodel.Field(default=1, ge=1)
    is_active: bool = sqlmodel.Field(default=True, index=True)
    popularity: int = sqlmodel.Field(default=0, ge=0)
    """Number of packs opened from this box"""
