"""Utility functions for handling ticker symbols and cache keys."""

INTRADAY_SUFFIX = "_intraday"


def normalize_symbol(symbol: str) -> str:
    """Return the canonical (trimmed, upper-case) form of a symbol."""
    return symbol.strip().upper()


def unique_symbols(symbols: list[str]) -> list[str]:
    """Normalize symbols and drop blanks and duplicates, keeping order."""
    seen: set[str] = set()
    result: list[str] = []
    for raw in symbols:
        sym = normalize_symbol(raw)
        if sym and sym not in seen:
            seen.add(sym)
            result.append(sym)
    return result


def quote_cache_key(symbol: str, intraday: bool = False) -> str:
    """Cache key for a parsed quote.

    The intraday variant is cached independently of the daily quote
    because their freshness rules and payloads differ.
    """
    sym = normalize_symbol(symbol)
    return f"{sym}{INTRADAY_SUFFIX}" if intraday else sym


def chart_cache_key(symbol: str, range_: str, interval: str) -> str:
    """Cache key for a raw chart payload of a given shape."""
    return f"{normalize_symbol(symbol)}_{range_}_{interval}"


def is_intraday_interval(interval: str) -> bool:
    """Any interval other than daily bars is treated as intraday."""
    return interval != "1d"
