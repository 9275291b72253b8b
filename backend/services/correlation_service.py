"""Correlation of daily returns between held symbols."""

import logging
from typing import Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

MIN_ALIGNED_POINTS = 10
MIN_RETURNS = 5


def _frame(series: dict[str, list[tuple[str, float]]]) -> pd.DataFrame:
    """Wide frame of closes: one column per symbol, indexed by date."""
    columns = {
        sym: pd.Series({day: close for day, close in points}, dtype="float64")
        for sym, points in series.items()
    }
    return pd.DataFrame(columns).sort_index()


def pair_correlation(closes: pd.DataFrame, a: str, b: str) -> Optional[float]:
    """Pearson correlation of daily returns on dates both symbols traded.

    Returns None when fewer than ``MIN_ALIGNED_POINTS`` dates overlap or
    fewer than ``MIN_RETURNS`` finite returns remain. A zero-variance pair
    correlates 0. The result is clamped to [-1, 1].
    """
    aligned = closes[[a, b]].dropna()
    if len(aligned) < MIN_ALIGNED_POINTS:
        return None
    returns = aligned.pct_change(fill_method=None).replace([np.inf, -np.inf], np.nan).dropna()
    if len(returns) < MIN_RETURNS:
        return None

    ra = returns[a].to_numpy()
    rb = returns[b].to_numpy()
    da = ra - ra.mean()
    db = rb - rb.mean()
    denom = np.sqrt(np.sum(da * da) * np.sum(db * db))
    if denom == 0:
        return 0.0
    return float(np.clip(np.sum(da * db) / denom, -1.0, 1.0))


def correlation_matrix(series: dict[str, list[tuple[str, float]]]) -> dict:
    """Symmetric correlation matrix for every symbol with history.

    Returns:
        ``{"symbols": [...], "matrix": [[...]], "average": float | None}``.
        Cells are None where a pair lacks enough overlapping history.
    """
    symbols = sorted(sym for sym, points in series.items() if points)
    if not symbols:
        return {"symbols": [], "matrix": [], "average": None}

    closes = _frame({sym: series[sym] for sym in symbols})
    size = len(symbols)
    matrix: list[list[Optional[float]]] = [[None] * size for _ in range(size)]
    off_diagonal: list[float] = []
    for i in range(size):
        matrix[i][i] = 1.0
        for j in range(i + 1, size):
            value = pair_correlation(closes, symbols[i], symbols[j])
            matrix[i][j] = matrix[j][i] = value
            if value is not None:
                off_diagonal.append(value)

    average = sum(off_diagonal) / len(off_diagonal) if off_diagonal else None
    logger.debug("Correlation matrix for %d symbols (%d pairs)", size, len(off_diagonal))
    return {"symbols": symbols, "matrix": matrix, "average": average}
