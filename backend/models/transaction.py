"""Transaction model - BUY/SELL records that define cost basis."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
)

from database import Base
from models.utils import generate_uuid


class Transaction(Base):
    """A single BUY or SELL of a symbol within a portfolio.

    ``price`` is in the instrument's native currency. ``price_usd`` is fixed
    when the row is written, using the historical FX rate for ``date``, and
    is never recomputed on read.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("type IN ('BUY', 'SELL')", name="ck_transaction_type"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    portfolio_id = Column(
        String(36), ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    symbol = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    price_usd = Column(Float, nullable=False, default=0.0)
    price_usd_exact = Column(Boolean, nullable=False, default=True)
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    type = Column(String(4), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
