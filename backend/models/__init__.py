"""SQLAlchemy ORM models."""

from .api_usage import ApiUsage
from .fx_rate import FxRate
from .portfolio import Portfolio
from .quote_cache import QuoteCacheEntry, RawPayloadEntry
from .transaction import Transaction
from .utils import generate_uuid

__all__ = ["ApiUsage", "FxRate", "Portfolio", "QuoteCacheEntry", "RawPayloadEntry", "Transaction", "generate_uuid"]
