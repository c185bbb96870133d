import sqlmodel

from ._base import BaseModel


class SealedProduct(BaseModel, table=True):
    """A sealed product (booster box, bundle, ...) that can be drawn from a box like a card."""

    __tablename__: str = "sealed_products"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    box_id: int = sqlmodel.Field(foreign_key="boxes.id", index=True)
    name: str = sqlmodel.Field(max_length=200)
    set_name: str | None = None
    product_type: str = "Booster Box"
    image_url: str | None = None
    pull_rate: float = sqlmodel.Field(default=0.0, ge=0.0)
    coin_value: int = sqlmodel.Field(default=1, ge=0)
