"""Frankfurter (ECB reference rates) FX client."""

import asyncio
import logging
from typing import Optional

import httpx

from integrations.exceptions import (
    MalformedPayloadError,
    RateLimitedError,
    SymbolNotFoundError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://api.frankfurter.app"


class FrankfurterClient:
    """Latest and date-pinned FX rates.

    Rates are returned as ``{currency: units of currency per 1 base}``.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout = timeout_seconds

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def provider_name(self) -> str:
        return "frankfurter"

    async def _get_rates(self, path: str, params: dict[str, str]) -> dict[str, float]:
        try:
            response = await asyncio.wait_for(
                self._client.get(f"{BASE_URL}/{path}", params=params),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeoutError(
                f"Frankfurter request timed out ({self._timeout:g}s)",
                provider_name=self.provider_name,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamHTTPError(
                f"Frankfurter request failed: {e}", provider_name=self.provider_name
            ) from e

        if response.status_code == 429:
            raise RateLimitedError("Frankfurter rate limit", provider_name=self.provider_name)
        if response.status_code == 404:
            raise SymbolNotFoundError(
                f"Frankfurter has no rates for {path}", provider_name=self.provider_name
            )
        if response.status_code < 200 or response.status_code >= 300:
            raise UpstreamHTTPError(
                f"Frankfurter HTTP {response.status_code}",
                provider_name=self.provider_name,
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedPayloadError(
                "Frankfurter returned a non-JSON response", provider_name=self.provider_name
            ) from e
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise MalformedPayloadError(
                "Frankfurter response has no rates", provider_name=self.provider_name
            )
        try:
            return {k.upper(): float(v) for k, v in rates.items() if v is not None}
        except (TypeError, ValueError) as e:
            raise MalformedPayloadError(
                "Frankfurter returned a non-numeric rate", provider_name=self.provider_name
            ) from e

    async def latest(self, base: str, symbols: list[str]) -> dict[str, float]:
        """Latest rates from ``base`` to each of ``symbols``."""
        logger.info("Frankfurter: latest %s -> %s", base, ",".join(symbols))
        return await self._get_rates("latest", {"from": base, "to": ",".join(symbols)})

    async def historical(self, date: str, from_ccy: str, to_ccy: str) -> float:
        """Rate from ``from_ccy`` to ``to_ccy`` on ``date`` (YYYY-MM-DD)."""
        logger.info("Frankfurter: %s %s -> %s", date, from_ccy, to_ccy)
        rates = await self._get_rates(date, {"from": from_ccy, "to": to_ccy})
        rate = rates.get(to_ccy.upper())
        if not rate:
            raise MalformedPayloadError(
                f"No rate for {from_ccy}->{to_ccy} on {date}",
                provider_name=self.provider_name,
            )
        return rate
