"""Pydantic schemas for FX, usage and system endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class HistoricalRateResponse(BaseModel):
    rate: float
    date: str
    from_: str = Field(alias="from")
    to: str
    cached: bool = False

    model_config = ConfigDict(populate_by_name=True)


class UsageDay(BaseModel):
    date: str
    calls: int


class ApiUsageResponse(BaseModel):
    """Alpha Vantage daily quota."""

    date: str
    today: int
    limit: int
    remaining: int
    history: list[UsageDay]


class HealthResponse(BaseModel):
    status: str
    version: str
    portfolios: int
    transactions: int
    cacheHits: int
    cacheMisses: int
    staleServed: int
    uptime: float


class StatsResponse(BaseModel):
    portfolios: int
    transactions: int
    cacheSize: int
    cacheHits: int
    cacheMisses: int
    staleServed: int
    inFlight: int
    coalesced: int
