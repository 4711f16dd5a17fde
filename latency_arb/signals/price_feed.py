"""
Real-Time Price Feed

Primary: Bybit spot WebSocket (trades + 1-minute klines) for BTCUSDT,
seeded with Binance.us REST candles at startup.
Secondary: CoinGecko REST polling as an independent confirmation source.

Both emit PriceObservation objects to a callback. Coroutine callbacks are
scheduled as tasks so the socket reader never waits on an evaluation.
"""
import asyncio
import inspect
import json
import time
from typing import Callable, Optional, Set

import aiohttp
import websockets

from ..config import FeedConfig
from ..models import PriceObservation, PriceSource
from ..utils.logger import get_logger
from .buffers import PriceHistory

logger = get_logger("price_feed")

TickCallback = Callable[[PriceObservation], object]


class _Emitter:
    """Dispatches observations to a sync or async callback."""

    def __init__(self):
        self._on_tick: Optional[TickCallback] = None
        self._tasks: Set[asyncio.Task] = set()

    def set_tick_callback(self, callback: TickCallback):
        self._on_tick = callback

    def _emit(self, observation: PriceObservation):
        if self._on_tick is None:
            return
        result = self._on_tick(observation)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


class BybitPriceFeed(_Emitter):
    """
    BTC price feed from the Bybit v5 public spot stream.

    Features:
    - Trade ticks for latency-sensitive evaluation
    - 1-minute klines into a bounded close history
    - Application-level ping every 20s
    - Automatic reconnection with exponential backoff
    """

    PING_INTERVAL = 20
    MAX_RECONNECT_DELAY = 30.0

    def __init__(
        self,
        config: Optional[FeedConfig] = None,
        history: Optional[PriceHistory] = None,
        clock: Callable[[], float] = time.time
    ):
        super().__init__()
        self.config = config or FeedConfig()
        self.history = history or PriceHistory()
        self._clock = clock

        self._ws = None
        self._running = False
        self._reconnect_delay = 1.0
        self.connected = False
        self.last_price: Optional[float] = None
        self.last_price_at: Optional[float] = None

    @property
    def trade_topic(self) -> str:
        return f"publicTrade.{self.config.symbol}"

    @property
    def kline_topic(self) -> str:
        return f"kline.1.{self.config.symbol}"

    async def bootstrap(self, limit: int = 60) -> int:
        """
        Seed the close history from REST 1-minute klines.

        Returns:
            Number of candles loaded (0 on failure)
        """
        params = {"symbol": self.config.symbol, "interval": "1m", "limit": limit}
        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.config.bootstrap_url, params=params) as response:
                    response.raise_for_status()
                    klines = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Bootstrap failed, starting with empty history: {e}")
            return 0

        # [open_time_ms, open, high, low, close, volume, ...]
        self.history.load((k[0] / 1000, float(k[4])) for k in klines)
        if klines:
            self.last_price = float(klines[-1][4])
        logger.info(f"Bootstrapped {len(klines)} candles. Latest: ${self.last_price}")
        return len(klines)

    async def connect(self):
        """Connect and stream until stop() is called."""
        self._running = True

        while self._running:
            ping_task = None
            try:
                logger.info("Connecting to Bybit WebSocket...")
                async with websockets.connect(self.config.bybit_ws_url, ping_interval=None) as ws:
                    self._ws = ws
                    self._reconnect_delay = 1.0
                    self.connected = True
                    await ws.send(json.dumps({
                        "op": "subscribe",
                        "args": [self.trade_topic, self.kline_topic]
                    }))
                    logger.info("Connected to Bybit WebSocket")

                    ping_task = asyncio.create_task(self._ping_loop(ws))
                    async for message in ws:
                        self.handle_message(message)

            except (websockets.WebSocketException, OSError, asyncio.TimeoutError) as e:
                logger.warning(f"Bybit WebSocket error: {e}")
            finally:
                self.connected = False
                self._ws = None
                if ping_task:
                    ping_task.cancel()

            if self._running:
                logger.info(f"Reconnecting in {self._reconnect_delay}s...")
                await asyncio.sleep(self._reconnect_delay)
                self._reconnect_delay = min(self.MAX_RECONNECT_DELAY, self._reconnect_delay * 2)

    async def _ping_loop(self, ws):
        while True:
            await asyncio.sleep(self.PING_INTERVAL)
            await ws.send(json.dumps({"op": "ping"}))

    def handle_message(self, message):
        """Parse one stream message; malformed frames are logged and dropped."""
        try:
            data = json.loads(message)
        except (TypeError, ValueError) as e:
            logger.debug(f"Error parsing message: {e}")
            return

        if data.get("op") in ("subscribe", "pong", "ping"):
            return

        topic = data.get("topic")
        payload = data.get("data")
        if not topic or not payload:
            return

        try:
            if topic == self.trade_topic:
                self._handle_trade(payload)
            elif topic == self.kline_topic:
                self._handle_kline(payload)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.debug(f"Malformed {topic} payload: {e}")

    def _handle_trade(self, trades: list):
        price = float(trades[-1]["p"])  # Latest trade in the batch
        if price <= 0:
            return
        now = self._clock()
        self.last_price = price
        self.last_price_at = now
        self.history.record(price, now)
        self._emit(PriceObservation(price=price, source=PriceSource.PRIMARY, observed_at=now))

    def _handle_kline(self, klines: list):
        k = klines[0]
        close = float(k["close"])
        if close <= 0:
            return
        self.history.record(close, int(k["start"]) / 1000)

    async def stop(self):
        """Stop streaming."""
        self._running = False
        if self._ws:
            await self._ws.close()


class CoinGeckoPoller(_Emitter):
    """Polls CoinGecko for an independent BTC/USD price."""

    def __init__(
        self,
        config: Optional[FeedConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        super().__init__()
        self.config = config or FeedConfig()
        self._clock = clock
        self._running = False
        self._session: Optional[aiohttp.ClientSession] = None
        self.last_price: Optional[float] = None

    async def fetch_price(self) -> Optional[float]:
        """Fetch one price. Returns None on any failure."""
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))

        params = {"ids": "bitcoin", "vs_currencies": "usd", "precision": "2"}
        try:
            async with self._session.get(self.config.coingecko_url, params=params) as response:
                response.raise_for_status()
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"CoinGecko request failed: {e}")
            return None

        price = (data or {}).get("bitcoin", {}).get("usd")
        if not price or price <= 0:
            return None
        return float(price)

    async def poll_once(self) -> Optional[PriceObservation]:
        price = await self.fetch_price()
        if price is None:
            return None
        self.last_price = price
        observation = PriceObservation(price=price, source=PriceSource.SECONDARY, observed_at=self._clock())
        self._emit(observation)
        return observation

    async def run(self):
        """Poll until stop() is called."""
        self._running = True
        logger.info(f"Starting CoinGecko cross-check (every {self.config.coingecko_poll_seconds:.0f}s)")
        while self._running:
            await self.poll_once()
            await asyncio.sleep(self.config.coingecko_poll_seconds)

    async def stop(self):
        self._running = False
        if self._session:
            await self._session.close()
            self._session = None
