"""API route handlers."""
from . import fx, quotes, system, transactions, valuation

__all__ = ["fx", "quotes", "system", "transactions", "valuation"]
