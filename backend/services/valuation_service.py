"""Valuation service - reconstructs positions, values and period performance.

The reconstruction itself is a set of pure functions over plain data:
transactions, quotes and a live FX table. All accounting is in USD;
conversion to a display currency happens last.

Rates are ``{currency: units per 1 USD}``, so a native price converts to
USD by dividing by its currency's rate.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

from integrations.market_data_protocol import Quote

logger = logging.getLogger(__name__)

VALUATION_PERIODS = ("Intraday", "1W", "1M", "YTD", "1Y", "2Y", "Max")

# Positions at or below this quantity are treated as fully closed
QUANTITY_EPSILON = 1e-4

AGGREGATED_ID = "aggregated"


@dataclass
class Position:
    """Net holding of one symbol within one portfolio."""

    symbol: str
    portfolio_id: str
    name: Optional[str] = None
    quantity: float = 0.0
    cost_usd: float = 0.0


@dataclass
class ValuationNode:
    """A valued position (or the merge of several)."""

    symbol: str
    portfolio_id: str
    name: Optional[str]
    quantity: float
    cost_usd: float
    current_price_usd: float
    value_usd: float
    gain_loss_usd: float
    gl_perf: Optional[float]
    perf: Optional[float]
    weight: float = 0.0
    short_name: Optional[str] = None
    long_name: Optional[str] = None
    currency: str = "USD"
    stale: bool = False

    def to_dict(self, currency: str = "USD", rates: Optional[dict[str, float]] = None) -> dict[str, Any]:
        rates = rates or {}
        return {
            "symbol": self.symbol,
            "portfolioId": self.portfolio_id,
            "name": self.name,
            "shortName": self.short_name,
            "longName": self.long_name,
            "qty": self.quantity,
            "costUSD": self.cost_usd,
            "valueUSD": self.value_usd,
            "gainLossUSD": self.gain_loss_usd,
            "currentPriceUSD": self.current_price_usd,
            "value": to_display_currency(self.value_usd, currency, rates),
            "cost": to_display_currency(self.cost_usd, currency, rates),
            "gainLoss": to_display_currency(self.gain_loss_usd, currency, rates),
            "perf": self.perf,
            "glPerf": self.gl_perf,
            "weight": self.weight,
            "quoteCurrency": self.currency,
            "stale": self.stale,
        }


@dataclass
class PortfolioSummary:
    total_value_usd: float = 0.0
    total_cost_usd: float = 0.0
    gain_loss_usd: float = 0.0
    gl_perf: Optional[float] = None
    period_perf: Optional[float] = None
    missing_quotes: list[str] = field(default_factory=list)

    def to_dict(self, currency: str = "USD", rates: Optional[dict[str, float]] = None) -> dict[str, Any]:
        rates = rates or {}
        return {
            "totalValueUSD": self.total_value_usd,
            "totalCostUSD": self.total_cost_usd,
            "gainLossUSD": self.gain_loss_usd,
            "totalValue": to_display_currency(self.total_value_usd, currency, rates),
            "totalCost": to_display_currency(self.total_cost_usd, currency, rates),
            "gainLoss": to_display_currency(self.gain_loss_usd, currency, rates),
            "glPerf": self.gl_perf,
            "portfolioPerf": self.period_perf,
            "missingQuotes": list(self.missing_quotes),
        }


def _rate(currency: Optional[str], rates: dict[str, float]) -> float:
    if not currency or currency == "USD":
        return 1.0
    return rates.get(currency, 1.0)


def to_usd(price: float, currency: Optional[str], rates: dict[str, float]) -> float:
    """Native price -> USD using the live table (unknown currencies pass through)."""
    rate = _rate(currency, rates)
    return price / rate if rate > 0 else price


def to_display_currency(amount_usd: float, currency: str, rates: dict[str, float]) -> float:
    """USD amount -> display currency. Applied only at the rendering step."""
    return amount_usd * _rate(currency, rates)


def build_positions(transactions: Iterable[Any]) -> dict[str, list[Position]]:
    """Net positions per portfolio from BUY/SELL transactions.

    ``cost_usd`` accumulates BUY ``quantity * price_usd`` (``price`` when
    ``price_usd`` is 0); SELLs only reduce quantity. Closed positions are
    dropped.
    """
    by_portfolio: dict[str, dict[str, Position]] = {}
    for tx in transactions:
        positions = by_portfolio.setdefault(tx.portfolio_id, {})
        pos = positions.get(tx.symbol)
        if pos is None:
            pos = Position(symbol=tx.symbol, portfolio_id=tx.portfolio_id, name=tx.name)
            positions[tx.symbol] = pos
        if tx.type == "BUY":
            pos.quantity += tx.quantity
            pos.cost_usd += tx.quantity * (tx.price_usd or tx.price)
        else:
            pos.quantity -= tx.quantity

    return {
        pid: [p for p in positions.values() if p.quantity > QUANTITY_EPSILON]
        for pid, positions in by_portfolio.items()
    }


def position_performance(
    position: Position,
    quote: Optional[Quote],
    period: str,
    rates: dict[str, float],
) -> Optional[float]:
    """Percent performance of a position over ``period``.

    ``Intraday`` compares to the previous close (or open). ``Max`` compares
    the USD price to the USD average cost. Every other period compares
    ``price`` to ``refs[period]``, both in native currency, so FX moves do
    not leak into the figure.
    """
    if quote is None or not quote.price:
        return None

    if period == "Intraday":
        base = quote.prev_close if quote.prev_close > 0 else quote.open
        return (quote.price - base) / base * 100 if base > 0 else None

    if period == "Max":
        current_usd = to_usd(quote.price, quote.currency, rates)
        avg_cost_usd = position.cost_usd / position.quantity if position.quantity > 0 else 0
        if avg_cost_usd <= 0:
            return None
        return (current_usd - avg_cost_usd) / avg_cost_usd * 100

    ref = quote.refs.get(period)
    if ref and ref > 0:
        return (quote.price - ref) / ref * 100
    return None


def _gl_perf(gain_loss_usd: float, cost_usd: float) -> Optional[float]:
    return gain_loss_usd / cost_usd * 100 if cost_usd > 0 else None


def _apply_weights(nodes: list[ValuationNode]) -> list[ValuationNode]:
    total = sum(n.value_usd for n in nodes)
    for node in nodes:
        node.weight = node.value_usd / total * 100 if total > 0 else 0.0
    return nodes


def build_portfolio_nodes(
    positions: list[Position],
    quotes: dict[str, Quote],
    period: str,
    rates: dict[str, float],
) -> list[ValuationNode]:
    """Value every position of one portfolio.

    A position without a quote is valued at its average cost.
    """
    nodes = []
    for pos in positions:
        quote = quotes.get(pos.symbol)
        if quote is not None:
            price_usd = to_usd(quote.price, quote.currency, rates)
        else:
            price_usd = pos.cost_usd / max(pos.quantity, 1)
        value_usd = price_usd * pos.quantity
        gain_loss = value_usd - pos.cost_usd
        nodes.append(ValuationNode(
            symbol=pos.symbol,
            portfolio_id=pos.portfolio_id,
            name=pos.name,
            quantity=pos.quantity,
            cost_usd=pos.cost_usd,
            current_price_usd=price_usd,
            value_usd=value_usd,
            gain_loss_usd=gain_loss,
            gl_perf=_gl_perf(gain_loss, pos.cost_usd),
            perf=position_performance(pos, quote, period, rates),
            short_name=quote.short_name if quote else None,
            long_name=quote.long_name if quote else None,
            currency=quote.currency if quote else "USD",
            stale=quote.stale if quote else False,
        ))
    return _apply_weights(nodes)


def aggregate_nodes(
    nodes_by_portfolio: dict[str, list[ValuationNode]],
    quotes: dict[str, Quote],
    period: str,
    rates: dict[str, float],
) -> list[ValuationNode]:
    """Merge the same symbol across portfolios.

    Quantity, cost, value and gain/loss are summed; ``gl_perf``, ``perf``
    and ``weight`` are recomputed from the merged totals, never averaged.
    """
    merged: dict[str, ValuationNode] = {}
    for nodes in nodes_by_portfolio.values():
        for node in nodes:
            existing = merged.get(node.symbol)
            if existing is None:
                merged[node.symbol] = replace(node, portfolio_id=AGGREGATED_ID)
                continue
            existing.quantity += node.quantity
            existing.cost_usd += node.cost_usd
            existing.value_usd += node.value_usd
            existing.gain_loss_usd += node.gain_loss_usd

    result = list(merged.values())
    for node in result:
        node.gl_perf = _gl_perf(node.gain_loss_usd, node.cost_usd)
        node.perf = position_performance(
            Position(node.symbol, AGGREGATED_ID, node.name, node.quantity, node.cost_usd),
            quotes.get(node.symbol),
            period,
            rates,
        )
    return _apply_weights(result)


def portfolio_summary(
    nodes: list[ValuationNode],
    quotes: dict[str, Quote],
    period: str,
    rates: dict[str, float],
) -> PortfolioSummary:
    """Totals and value-weighted period performance for a set of nodes.

    Period performance compares current USD value to the USD value at the
    period's reference price, summed over positions that have one.
    """
    summary = PortfolioSummary()
    summary.total_value_usd = sum(n.value_usd for n in nodes)
    summary.total_cost_usd = sum(n.cost_usd for n in nodes)
    summary.gain_loss_usd = summary.total_value_usd - summary.total_cost_usd
    summary.gl_perf = _gl_perf(summary.gain_loss_usd, summary.total_cost_usd)

    start_value = current_value = 0.0
    for node in nodes:
        quote = quotes.get(node.symbol)
        if quote is None or not quote.price:
            if node.symbol not in summary.missing_quotes:
                summary.missing_quotes.append(node.symbol)
            continue
        price_usd = to_usd(quote.price, quote.currency, rates)

        if period == "Max":
            avg_cost_usd = node.cost_usd / node.quantity if node.quantity > 0 else 0
            if avg_cost_usd > 0:
                start_value += avg_cost_usd * node.quantity
                current_value += price_usd * node.quantity
            continue

        if period == "Intraday":
            ref_native = quote.prev_close if quote.prev_close > 0 else quote.open
        else:
            ref_native = quote.refs.get(period)
        if not ref_native:
            continue
        start_value += to_usd(ref_native, quote.currency, rates) * node.quantity
        current_value += price_usd * node.quantity

    if start_value > 0:
        summary.period_perf = (current_value - start_value) / start_value * 100
    return summary


@dataclass
class Valuation:
    """Everything the dashboard needs for one view."""

    period: str
    currency: str
    view: str
    nodes: list[ValuationNode]
    summary: PortfolioSummary
    rates: dict[str, float]
    fx_fallback: bool = False
    quote_errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "currency": self.currency,
            "view": self.view,
            "nodes": [n.to_dict(self.currency, self.rates) for n in self.nodes],
            "summary": self.summary.to_dict(self.currency, self.rates),
            "rates": dict(self.rates),
            "fxFallback": self.fx_fallback,
            "quoteErrors": dict(self.quote_errors),
        }


def reconstruct(
    transactions: Iterable[Any],
    quotes: dict[str, Quote],
    rates: dict[str, float],
    period: str = "1Y",
    view: str = "aggregated",
) -> tuple[list[ValuationNode], PortfolioSummary]:
    """Positions -> nodes (per portfolio or aggregated) -> summary."""
    positions = build_positions(transactions)
    nodes_by_portfolio = {
        pid: build_portfolio_nodes(pos, quotes, period, rates)
        for pid, pos in positions.items()
    }
    if view == "aggregated":
        nodes = aggregate_nodes(nodes_by_portfolio, quotes, period, rates)
    else:
        nodes = [n for pid_nodes in nodes_by_portfolio.values() for n in pid_nodes]
    return nodes, portfolio_summary(nodes, quotes, period, rates)
