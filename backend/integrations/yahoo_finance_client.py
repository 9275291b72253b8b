"""Yahoo Finance chart endpoint client (primary quote provider)."""

import asyncio
import itertools
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from integrations.exceptions import (
    MalformedPayloadError,
    RateLimitedError,
    SymbolNotFoundError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
)
from integrations.market_data_protocol import QuoteSource, RawPayload

logger = logging.getLogger(__name__)

BASE_URL = "https://query1.finance.yahoo.com"

# Rotated round-robin, one per call, to avoid naive bot detection on the
# free endpoint.
USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) Gecko/20100101 Firefox/122.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2.1 Safari/605.1.15",
)


class YahooFinanceClient:
    """Market data provider using the Yahoo Finance v8 chart endpoint.

    Returns the provider's JSON untouched; ``services.quote_parser`` turns
    it into a ``Quote``. HTTP status codes are translated into
    ``UpstreamError`` subclasses before anything is returned.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
        user_agents: tuple[str, ...] = USER_AGENTS,
    ):
        """Initialize the client.

        Args:
            http_client: Shared ``httpx.AsyncClient``. If None, the client
                owns one and closes it in :meth:`close`.
            timeout_seconds: Hard limit for a whole request, including
                reading the body.
            user_agents: Pool of User-Agent strings rotated per call.
        """
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout = timeout_seconds
        self._user_agents = itertools.cycle(user_agents)

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "yahoo"

    @property
    def source(self) -> QuoteSource:
        return QuoteSource.YAHOO

    def _next_user_agent(self) -> str:
        return next(self._user_agents)

    async def _get_json(self, url: str, params: dict, symbol: str) -> RawPayload:
        headers = {
            "User-Agent": self._next_user_agent(),
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": "https://finance.yahoo.com",
        }
        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params, headers=headers),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeoutError(
                f"Yahoo Finance request timed out ({self._timeout:g}s)",
                provider_name=self.provider_name,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamHTTPError(
                f"Yahoo Finance request failed: {e}",
                provider_name=self.provider_name,
            ) from e

        if response.status_code == 429:
            raise RateLimitedError(
                "Yahoo Finance rate limit, try again in a minute",
                provider_name=self.provider_name,
            )
        if response.status_code == 404:
            raise SymbolNotFoundError(
                f'Symbol "{symbol}" not found on Yahoo Finance',
                provider_name=self.provider_name,
            )
        if response.status_code < 200 or response.status_code >= 300:
            raise UpstreamHTTPError(
                f"Yahoo Finance HTTP {response.status_code}",
                provider_name=self.provider_name,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedPayloadError(
                "Yahoo Finance returned a non-JSON response",
                provider_name=self.provider_name,
            ) from e
        if not isinstance(data, dict):
            raise MalformedPayloadError(
                "Yahoo Finance returned an unexpected JSON shape",
                provider_name=self.provider_name,
            )
        return data

    async def fetch_raw(
        self,
        symbol: str,
        range_: str = "2y",
        interval: str = "1d",
        events: Optional[str] = None,
    ) -> RawPayload:
        """Fetch a chart payload for one symbol.

        Args:
            symbol: Ticker symbol (already normalized).
            range_: Yahoo range string, e.g. "1d", "2y", "10y".
            interval: Bar interval, e.g. "1d", "5m".
            events: Optional event series to include, e.g. "div" or
                "splits|div".

        Returns:
            The chart JSON, guaranteed not to carry a ``chart.error``.
        """
        params = {
            "interval": interval,
            "range": range_,
            "includePrePost": "false",
        }
        if events:
            params["events"] = events

        logger.info("Yahoo Finance: fetching %s (range=%s, interval=%s)", symbol, range_, interval)
        data = await self._get_json(
            f"{BASE_URL}/v8/finance/chart/{quote(symbol, safe='')}", params, symbol
        )

        chart = data.get("chart")
        if not isinstance(chart, dict):
            raise MalformedPayloadError(
                "Yahoo Finance response has no chart section",
                provider_name=self.provider_name,
            )
        error = chart.get("error")
        if error:
            description = error.get("description") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if code == "Not Found":
                raise SymbolNotFoundError(
                    description or f'Symbol "{symbol}" not found on Yahoo Finance',
                    provider_name=self.provider_name,
                )
            raise MalformedPayloadError(
                description or "Yahoo error", provider_name=self.provider_name
            )
        return data

    async def fetch_quote_payload(
        self, symbol: str, api_key: Optional[str] = None
    ) -> RawPayload:
        """Daily 2-year chart, enough to derive every reference close."""
        return await self.fetch_raw(symbol, "2y", "1d")

    async def fetch_dividends(self, symbol: str, range_: str = "2y") -> RawPayload:
        """Daily chart including dividend events."""
        return await self.fetch_raw(symbol, range_, "1d", events="div")
