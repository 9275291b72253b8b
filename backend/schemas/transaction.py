"""Pydantic schemas for cost-basis transactions."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TransactionCreate(BaseModel):
    """Request body for recording a BUY or SELL.

    ``price`` may be omitted, in which case the split-adjusted historical
    close for ``date`` is looked up. ``price_usd`` may be supplied by the
    client; otherwise it is computed from the historical FX rate.
    """

    symbol: str = Field(min_length=1)
    name: Optional[str] = None
    quantity: float = Field(gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    price_usd: Optional[float] = Field(default=None, ge=0)
    date: date
    type: str
    currency: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in ("BUY", "SELL"):
            raise ValueError("type must be BUY or SELL")
        return v

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip().upper()
        if len(v) != 3:
            raise ValueError("currency must be a 3-letter ISO code")
        return v


class TransactionResponse(BaseModel):
    """Schema for a stored transaction."""

    id: str
    portfolio_id: str
    symbol: str
    name: Optional[str] = None
    quantity: float
    price: float
    price_usd: float
    price_usd_exact: bool
    date: str
    type: str
    currency: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RecalculateFxResponse(BaseModel):
    """Outcome of the FX repair pass."""

    total: int
    fixed: int
    skipped: int
    failed: int
