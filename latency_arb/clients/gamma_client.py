"""
Gamma API client for Polymarket market metadata.
Resolves the BTC up/down 5m event for a window and reads its quote and outcome.
"""

import asyncio
import json
from dataclasses import replace
from typing import Optional

import aiohttp

from ..config import VenueConfig
from ..models import Direction, MarketQuote
from ..utils.logger import get_logger

logger = get_logger("gamma")


class MarketUnavailableError(Exception):
    """The venue could not be reached or returned no usable market."""


def _json_list(value) -> list:
    """Gamma encodes outcome arrays as JSON strings."""
    if isinstance(value, list):
        return value
    if not value:
        return []
    return json.loads(value)


def _outcome_index(outcomes: list, label: str, fallback: int) -> int:
    for i, outcome in enumerate(outcomes):
        if label in str(outcome).lower():
            return i
    return fallback


def parse_market(event: dict, window_start: int) -> Optional[MarketQuote]:
    """
    Build a MarketQuote from a Gamma event payload.

    Returns None if the event has no market or fewer than two tokens.
    """
    markets = (event or {}).get("markets") or []
    if not markets:
        return None
    market = markets[0]

    token_ids = _json_list(market.get("clobTokenIds"))
    outcomes = _json_list(market.get("outcomes"))
    prices = _json_list(market.get("outcomePrices"))
    if len(token_ids) < 2 or len(prices) < 2:
        return None

    up_idx = _outcome_index(outcomes, "up", 0)
    down_idx = _outcome_index(outcomes, "down", 1)

    return MarketQuote(
        window_start=window_start,
        up_price=float(prices[up_idx]),
        down_price=float(prices[down_idx]),
        up_best_bid=_optional_float(market.get("bestBid")),
        up_best_ask=_optional_float(market.get("bestAsk")),
        slug=event.get("slug", ""),
        up_token_id=str(token_ids[up_idx]),
        down_token_id=str(token_ids[down_idx]),
        accepting_orders=bool(market.get("acceptingOrders", True))
    )


def parse_outcome(event: dict) -> Optional[Direction]:
    """
    Winner of a resolved market.

    outcomePrices ["1","0"] means the first outcome won. Returns None while
    unresolved.
    """
    markets = (event or {}).get("markets") or []
    if not markets:
        return None
    market = markets[0]
    outcomes = _json_list(market.get("outcomes"))
    prices = _json_list(market.get("outcomePrices"))
    if len(prices) < 2:
        return None

    up_idx = _outcome_index(outcomes, "up", 0)
    down_idx = _outcome_index(outcomes, "down", 1)
    if float(prices[up_idx]) == 1.0:
        return Direction.UP
    if float(prices[down_idx]) == 1.0:
        return Direction.DOWN
    return None


def _optional_float(value) -> Optional[float]:
    if value in (None, ""):
        return None
    return float(value)


class GammaClient:
    """
    Client for Polymarket Gamma API.

    The Gamma API provides event and market metadata without
    requiring authentication.
    """

    def __init__(self, config: Optional[VenueConfig] = None, clob=None):
        """
        Initialize Gamma client.

        Args:
            config: Venue endpoints and slug prefix
            clob: Optional CLOBClient used to enrich quotes with book depth
        """
        self.config = config or VenueConfig()
        self.clob = clob
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if not self._session:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        logger.info("Gamma client initialized")

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def slug_for(self, window_start: int) -> str:
        return f"{self.config.slug_prefix}-{window_start}"

    async def _request(self, endpoint: str, params: Optional[dict] = None) -> Optional[dict]:
        """GET from the Gamma API. 404 returns None."""
        if not self._session:
            await self.initialize()

        url = f"{self.config.gamma_url}{endpoint}"
        try:
            async with self._session.get(url, params=params) as response:
                if response.status == 404:
                    return None
                response.raise_for_status()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Gamma API request failed: {e}")
            raise MarketUnavailableError(str(e)) from e

    async def fetch_event(self, window_start: int) -> Optional[dict]:
        return await self._request(f"/events/slug/{self.slug_for(window_start)}")

    async def fetch_quote(self, window_start: int) -> Optional[MarketQuote]:
        """
        Current quote for a window.

        Returns:
            MarketQuote, or None if the market does not exist yet

        Raises:
            MarketUnavailableError: On transport failure
        """
        event = await self.fetch_event(window_start)
        quote = parse_market(event, window_start) if event else None
        if quote is None:
            logger.debug(f"No market for {self.slug_for(window_start)}")
            return None

        if self.clob is not None:
            quote = await self._with_books(quote)
        return quote

    async def _with_books(self, quote: MarketQuote) -> MarketQuote:
        up, down = await asyncio.gather(
            self.clob.get_book_top(quote.up_token_id),
            self.clob.get_book_top(quote.down_token_id)
        )
        changes = {}
        if up is not None:
            changes.update(up_best_bid=up.best_bid, up_best_ask=up.best_ask, up_ask_depth=up.ask_depth)
        if down is not None:
            changes.update(down_best_bid=down.best_bid, down_best_ask=down.best_ask, down_ask_depth=down.ask_depth)
        return replace(quote, **changes)

    async def fetch_outcome(self, window_start: int) -> Optional[Direction]:
        """
        Resolved winner for a window.

        Returns:
            Direction.UP / Direction.DOWN, or None while pending or missing
        """
        event = await self.fetch_event(window_start)
        if not event:
            return None
        return parse_outcome(event)
