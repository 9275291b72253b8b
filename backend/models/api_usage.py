"""ApiUsage model - daily call counter for quota-limited providers."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from database import Base


class ApiUsage(Base):
    """Number of upstream calls made on a given UTC date."""

    __tablename__ = "api_usage"

    date = Column(String(10), primary_key=True)  # YYYY-MM-DD
    calls = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
