from datetime import datetime

from pydantic import BaseModel, Field, computed_field

from app.core.enums import ItemType, SellRejectReason


class PullResponse(BaseModel):
    """An owned pull with the item it holds and whether it can be sold right now."""

    id: int
    box_id: int
    kind: ItemType
    item_id: int
    name: str
    image_url: str | None
    set_name: str | None
    rarity: str | None
    coin_value: int
    pulled_at: datetime
    lock_reason: SellRejectReason | None = None

    @computed_field
    @property
    def is_sellable(self) -> bool:
        return self.lock_reason is None


class BulkSellRequest(BaseModel):
    pull_ids: list[int] = Field(min_length=1, max_length=100)


class SellResult(BaseModel):
    """Response schema for selling a single pull."""

    pull_id: int
    item_name: str
    coins_received: int
    new_currency_balance: int


class SellRejection(BaseModel):
    pull_id: int
    reason: SellRejectReason


class BulkSellResult(BaseModel):
    """Outcome of a bulk sale; rejected pulls are reported, not raised."""

    sold: list[SellResult]
    rejected: list[SellRejection]
    coins_received: int
    new_currency_balance: int
