"""Quote cache models - parsed quotes and raw provider payloads."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from database import Base


class QuoteCacheEntry(Base):
    """Latest parsed quote for a cache key.

    The key is the symbol for daily quotes, or a request-shape qualified
    variant (e.g. ``AAPL_intraday``) that is cached independently.
    """

    __tablename__ = "quotes_cache"

    key = Column(String, primary_key=True)
    symbol = Column(String, nullable=False, index=True)
    data = Column(Text, nullable=False)  # JSON-serialized Quote
    source = Column(String, nullable=False, default="yahoo")
    market_date = Column(String(10), nullable=True)  # YYYY-MM-DD
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class RawPayloadEntry(Base):
    """Full provider response, kept for chart/sparkline and lookup reuse."""

    __tablename__ = "raw_payload_cache"

    key = Column(String, primary_key=True)
    symbol = Column(String, nullable=False, index=True)
    data = Column(Text, nullable=False)  # JSON-serialized provider payload
    source = Column(String, nullable=False, default="yahoo")
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
