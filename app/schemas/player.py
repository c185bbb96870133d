from pydantic import BaseModel, Field


class CurrencyAdjustment(BaseModel):
    """Schema for adjusting player currency (increase or decrease)."""

    amount: int = Field(gt=0, description="Amount to adjust (must be positive)")
    reason: str = Field(min_length=1, max_length=255, description="Reason for adjustment")


class CurrencySet(BaseModel):
    """Schema for setting player currency to a specific amount."""

    amount: int = Field(ge=0, description="New currency amount (must be non-negative)")
    reason: str = Field(min_length=1, max_length=255, description="Reason for setting currency")
