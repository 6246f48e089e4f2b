"""
Quote Lookup Service

Fetches live prices for investment tickers from a brapi-compatible
endpoint: GET {base_url}/{symbol}?token=...

DESIGN DECISION: Quotes are best-effort. A symbol that fails for any
reason (HTTP error, bad token, malformed body, network error) is simply
absent from the result; callers fall back to the stored snapshot.
This method never raises.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

import httpx
import structlog

from fintrack.audit import AuditLogger
from fintrack.config import get_settings
from fintrack.config.settings import MarketSettings
from fintrack.models.finance import MarketQuote


logger = structlog.get_logger(__name__)

SERVICE_NAME = "market"


class QuoteService:
    """
    Concurrent per-symbol quote fetcher.

    Tickers are requested one per call because free tiers reject
    multi-asset requests.
    """

    def __init__(
        self,
        settings: Optional[MarketSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().market
        self._transport = transport
        self._audit_logger = audit_logger or AuditLogger()

    def _failed(self, symbol: str, reason: str) -> None:
        self._audit_logger.log_external_service_error(SERVICE_NAME, f"{symbol}: {reason}")

    def _parse_quote(self, symbol: str, payload: dict) -> Optional[MarketQuote]:
        results = payload.get("results") or []
        if not results:
            return None
        item = results[0]
        try:
            return MarketQuote(
                symbol=item.get("symbol") or symbol,
                current_price=Decimal(str(item["regularMarketPrice"])),
                change_percent=Decimal(str(item.get("regularMarketChangePercent") or 0)),
            )
        except (KeyError, TypeError, InvalidOperation, ValueError):
            return None

    async def _fetch_one(self, client: httpx.AsyncClient, symbol: str) -> Optional[MarketQuote]:
        try:
            response = await client.get(
                f"{self._settings.base_url.rstrip('/')}/{symbol}",
                params={"token": self._settings.token},
            )
        except httpx.HTTPError as e:
            self._failed(symbol, f"request failed: {e}")
            return None

        if response.status_code == 401:
            logger.error("quote_unauthorized", symbol=symbol, hint="check MARKET_TOKEN")
            self._failed(symbol, "unauthorized")
            return None
        if response.is_error:
            self._failed(symbol, f"HTTP {response.status_code}")
            return None

        try:
            payload = response.json()
        except ValueError:
            self._failed(symbol, "malformed body")
            return None
        if not isinstance(payload, dict):
            self._failed(symbol, "unexpected body")
            return None
        return self._parse_quote(symbol, payload)

    async def get_quotes(self, tickers: Iterable[str]) -> dict[str, MarketQuote]:
        """
        Fetch quotes for the given tickers.

        Returns:
            {symbol: quote} for every symbol that resolved
        """
        symbols = list(dict.fromkeys(t.strip() for t in tickers if t and t.strip()))
        if not symbols:
            return {}

        async with httpx.AsyncClient(
            timeout=self._settings.timeout_seconds,
            transport=self._transport,
        ) as client:
            results = await asyncio.gather(
                *(self._fetch_one(client, symbol) for symbol in symbols)
            )

        quotes: dict[str, MarketQuote] = {}
        for symbol, quote in zip(symbols, results):
            if quote is not None:
                quotes[symbol] = quote
        return quotes

    async def get_prices(self, tickers: Iterable[str]) -> dict[str, Decimal]:
        """Convenience: {symbol: current price}."""
        quotes = await self.get_quotes(tickers)
        return {symbol: quote.current_price for symbol, quote in quotes.items()}
