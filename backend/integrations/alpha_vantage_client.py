"""Alpha Vantage client (alternate quote provider)."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from integrations.exceptions import (
    MalformedPayloadError,
    MissingApiKeyError,
    RateLimitedError,
    SymbolNotFoundError,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
)
from integrations.market_data_protocol import QuoteSource, RawPayload

logger = logging.getLogger(__name__)

BASE_URL = "https://www.alphavantage.co/query"

UsageRecorder = Callable[[int], Awaitable[None]]


class AlphaVantageClient:
    """Quote provider backed by Alpha Vantage's free tier.

    A daily quote takes three logically distinct calls: GLOBAL_QUOTE,
    TIME_SERIES_DAILY_ADJUSTED and OVERVIEW. Every call that reaches the
    provider consumes one unit of a small daily quota and is reported to
    ``usage_recorder`` so the remaining budget can be surfaced.
    """

    def __init__(
        self,
        api_key: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        usage_recorder: Optional[UsageRecorder] = None,
        timeout_seconds: float = 10.0,
    ):
        """Initialize the client.

        Args:
            api_key: Default API key; a per-call key overrides it.
            http_client: Shared ``httpx.AsyncClient``. If None, the client
                owns one and closes it in :meth:`close`.
            usage_recorder: Awaitable callback receiving the number of
                quota units consumed.
            timeout_seconds: Hard limit for each request.
        """
        self._api_key = api_key
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._usage_recorder = usage_recorder
        self._timeout = timeout_seconds

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "alphavantage"

    @property
    def source(self) -> QuoteSource:
        return QuoteSource.ALPHA_VANTAGE

    async def _record_usage(self, units: int) -> None:
        if self._usage_recorder is None:
            return
        try:
            await self._usage_recorder(units)
        except Exception:
            logger.warning("Alpha Vantage: failed to record usage", exc_info=True)

    async def _query(self, params: dict[str, str]) -> RawPayload:
        """Run one query and classify provider-level errors."""
        try:
            response = await asyncio.wait_for(
                self._client.get(BASE_URL, params=params), timeout=self._timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeoutError(
                f"Alpha Vantage request timed out ({self._timeout:g}s)",
                provider_name=self.provider_name,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamHTTPError(
                f"Alpha Vantage request failed: {e}",
                provider_name=self.provider_name,
            ) from e

        # The request reached the provider, so it counts against the quota
        await self._record_usage(1)

        if response.status_code == 429:
            raise RateLimitedError(
                "Alpha Vantage rate limit", provider_name=self.provider_name
            )
        if response.status_code < 200 or response.status_code >= 300:
            raise UpstreamHTTPError(
                f"Alpha Vantage HTTP {response.status_code}",
                provider_name=self.provider_name,
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedPayloadError(
                "Alpha Vantage returned a non-JSON response",
                provider_name=self.provider_name,
            ) from e
        if not isinstance(data, dict):
            raise MalformedPayloadError(
                "Alpha Vantage returned an unexpected JSON shape",
                provider_name=self.provider_name,
            )

        # Quota notices come back as HTTP 200 with a Note/Information body
        notice = data.get("Note") or data.get("Information")
        if notice:
            raise RateLimitedError(str(notice), provider_name=self.provider_name)
        if "Error Message" in data:
            raise SymbolNotFoundError(
                str(data["Error Message"]), provider_name=self.provider_name
            )
        return data

    def _resolve_key(self, api_key: Optional[str]) -> str:
        key = api_key or self._api_key
        if not key:
            raise MissingApiKeyError(
                "No Alpha Vantage API key configured",
                provider_name=self.provider_name,
            )
        return key

    async def global_quote(self, symbol: str, api_key: Optional[str] = None) -> RawPayload:
        key = self._resolve_key(api_key)
        return await self._query({"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": key})

    async def daily_adjusted(
        self, symbol: str, api_key: Optional[str] = None, output: str = "full"
    ) -> RawPayload:
        key = self._resolve_key(api_key)
        return await self._query({
            "function": "TIME_SERIES_DAILY_ADJUSTED",
            "symbol": symbol,
            "outputsize": output,
            "apikey": key,
        })

    async def overview(self, symbol: str, api_key: Optional[str] = None) -> RawPayload:
        key = self._resolve_key(api_key)
        return await self._query({"function": "OVERVIEW", "symbol": symbol, "apikey": key})

    async def fetch_quote_payload(
        self, symbol: str, api_key: Optional[str] = None
    ) -> RawPayload:
        """Fetch quote, daily series and company overview for one symbol.

        Quote and series are fetched concurrently; the overview is
        best-effort and only used for the display name.

        Returns:
            ``{"quote": ..., "series": ..., "overview": ...}``
        """
        key = self._resolve_key(api_key)
        logger.info("Alpha Vantage: fetching %s", symbol)

        quote_data, series_data = await asyncio.gather(
            self.global_quote(symbol, key),
            self.daily_adjusted(symbol, key),
        )

        global_quote = quote_data.get("Global Quote")
        if not global_quote:
            raise SymbolNotFoundError(
                f"No quote data for {symbol}", provider_name=self.provider_name
            )

        overview_data: RawPayload = {}
        try:
            overview_data = await self.overview(symbol, key)
        except UpstreamError as e:
            logger.info("Alpha Vantage: overview for %s unavailable: %s", symbol, e)

        return {"quote": quote_data, "series": series_data, "overview": overview_data}
