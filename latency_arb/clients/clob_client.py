"""
CLOB client wrapper for Polymarket order operations.
Wraps py-clob-client with async support and error handling.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional
import time

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, OrderArgs, OrderType
from py_clob_client.order_builder.constants import BUY

from ..utils.logger import get_logger

logger = get_logger("clob")


@dataclass
class OrderResult:
    """Result of an order placement."""
    order_id: str
    success: bool
    status: str
    error: Optional[str] = None
    timestamp: float = 0.0


@dataclass
class BookTop:
    """Best bid/ask and ask depth for one token."""
    best_bid: Optional[float]
    best_ask: Optional[float]
    ask_depth: float = 0.0


class CLOBClient:
    """
    Async wrapper for Polymarket CLOB client.

    Handles buy order placement and book queries.
    Uses the official py-clob-client under the hood; its calls block, so
    they run in the event loop's default executor.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        api_passphrase: str,
        private_key: str,
        host: str = "https://clob.polymarket.com",
        chain_id: int = 137  # Polygon Mainnet
    ):
        """
        Initialize CLOB client.

        Args:
            api_key: Polymarket API key
            api_secret: Polymarket API secret
            api_passphrase: Polymarket API passphrase
            private_key: Wallet private key (order signing only)
            host: CLOB endpoint
            chain_id: Blockchain chain ID (137 for Polygon)
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_passphrase = api_passphrase
        self.private_key = private_key
        self.host = host
        self.chain_id = chain_id

        self._client: Optional[ClobClient] = None

    async def initialize(self) -> None:
        """Initialize the CLOB client."""
        logger.info("Initializing CLOB client")

        loop = asyncio.get_event_loop()
        self._client = await loop.run_in_executor(None, self._create_client)

        logger.info("CLOB client initialized successfully")

    def _create_client(self) -> ClobClient:
        """Create the underlying py-clob-client instance."""
        return ClobClient(
            host=self.host,
            key=self.private_key,
            chain_id=self.chain_id,
            creds=ApiCreds(
                api_key=self.api_key,
                api_secret=self.api_secret,
                api_passphrase=self.api_passphrase
            )
        )

    async def place_order(self, token_id: str, size: float, price: float) -> OrderResult:
        """
        Place a GTC limit buy on the CLOB.

        Args:
            token_id: Outcome token to buy
            size: Number of shares
            price: Limit price (0-1)

        Returns:
            OrderResult with order ID and status; failures are returned, not raised
        """
        if not self._client:
            raise RuntimeError("CLOB client not initialized")

        logger.debug(f"Placing order: BUY {size} @ {price} for {token_id}")

        try:
            loop = asyncio.get_event_loop()
            order_args = OrderArgs(token_id=token_id, price=price, size=size, side=BUY)

            signed_order = await loop.run_in_executor(
                None,
                lambda: self._client.create_order(order_args)
            )
            result = await loop.run_in_executor(
                None,
                lambda: self._client.post_order(signed_order, OrderType.GTC)
            )

            order_id = result.get("orderID") or result.get("id") or ""
            if not result.get("success", True) or not order_id:
                error = result.get("errorMsg") or "Order rejected"
                logger.error(f"Order rejected: {error}")
                return OrderResult(order_id="", success=False, status="REJECTED", error=error, timestamp=time.time())

            logger.info(
                "Order placed successfully",
                extra={
                    "order_id": order_id,
                    "token_id": token_id,
                    "size": size,
                    "price": price
                }
            )
            return OrderResult(
                order_id=order_id,
                success=True,
                status=result.get("status", "LIVE"),
                timestamp=time.time()
            )

        except Exception as e:
            logger.error(f"Failed to place order: {e}")
            return OrderResult(
                order_id="",
                success=False,
                status="FAILED",
                error=str(e),
                timestamp=time.time()
            )

    async def get_book_top(self, token_id: str) -> Optional[BookTop]:
        """Best bid/ask and total ask size for a token, None on failure."""
        if not self._client:
            raise RuntimeError("CLOB client not initialized")

        try:
            loop = asyncio.get_event_loop()
            book = await loop.run_in_executor(None, lambda: self._client.get_order_book(token_id))
        except Exception as e:
            logger.warning(f"Failed to fetch book for {token_id}: {e}")
            return None

        bids = [float(b.price) for b in (book.bids or [])]
        asks = [(float(a.price), float(a.size)) for a in (book.asks or [])]
        return BookTop(
            best_bid=max(bids) if bids else None,
            best_ask=min(p for p, _ in asks) if asks else None,
            ask_depth=sum(s for _, s in asks)
        )
