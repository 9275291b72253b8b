"""FxRate model - cached currency conversion rates."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, String

from database import Base


class FxRate(Base):
    """A cached FX rate.

    ``pair`` is either a bare currency code for the live USD->ccy rate
    (e.g. ``EUR``) or a date-pinned historical pair
    (e.g. ``hist_2024-03-01_EUR_USD``). Historical rows never expire.
    """

    __tablename__ = "fx_cache"

    pair = Column(String, primary_key=True)
    rate = Column(Float, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
