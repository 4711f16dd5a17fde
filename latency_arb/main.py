"""
Main entry point for the BTC 5-minute latency arbitrage bot.
Orchestrates feeds, the signal controller, settlement and the control API.
"""

import asyncio
import dataclasses
import signal
import sys
import time
from typing import Optional

import uvicorn

from .api.server import create_app
from .clients.clob_client import CLOBClient
from .clients.gamma_client import GammaClient
from .config import load_config, Config, RiskConfig, SignalConfig, RESTART_ONLY_KEYS
from .database import TradeDatabase
from .execution.executor import OrderExecutor
from .execution.settlement import Settler
from .signals.controller import SignalController
from .signals.price_feed import BybitPriceFeed, CoinGeckoPoller
from .utils.logger import setup_logging, get_logger

logger = get_logger("main")

# Recent trades whose windows stay blocked after a restart
RESTORED_TRADE_LIMIT = 50


class LatencyArbBot:
    """
    Main bot orchestrator.

    Coordinates:
    - Bybit trade feed (primary) and CoinGecko poller (secondary)
    - Signal controller (gating, edge, sizing)
    - Order execution and settlement
    - Persistence and the HTTP control API
    """

    def __init__(self, config: Config):
        """Initialize bot with configuration."""
        self.config = config
        self.started_at = time.time()
        self._running = False
        self._shutdown_complete = False
        self._shutdown_event = asyncio.Event()

        self.db = TradeDatabase(config.control.db_path)

        self.clob_client: Optional[CLOBClient] = None
        if config.venue.has_credentials:
            self.clob_client = CLOBClient(
                api_key=config.venue.api_key,
                api_secret=config.venue.api_secret,
                api_passphrase=config.venue.api_passphrase,
                private_key=config.venue.private_key,
                host=config.venue.clob_url,
                chain_id=config.venue.chain_id
            )
        self.gamma_client = GammaClient(config.venue, clob=self.clob_client)

        self.controller = SignalController(config, quote_provider=self.gamma_client)
        self.executor = OrderExecutor(
            bankroll=self.controller.state.bankroll,
            db=self.db,
            clob_client=self.clob_client,
            dry_run=config.risk.dry_run
        )
        self.controller.executor = self.executor

        self.settler = Settler(
            self.db,
            self.gamma_client,
            self.controller,
            post_mortem_path=config.control.post_mortem_path,
            grace_seconds=config.venue.settlement_grace_seconds
        )

        self.price_feed = BybitPriceFeed(config.feed, history=self.controller.state.history)
        self.price_feed.set_tick_callback(self.controller.evaluate)
        self.secondary_feed: Optional[CoinGeckoPoller] = None
        if config.feed.enable_secondary:
            self.secondary_feed = CoinGeckoPoller(config.feed)
            self.secondary_feed.set_tick_callback(self.controller.evaluate)

        self._server: Optional[uvicorn.Server] = None

    def restore_state(self) -> None:
        """Reload bankroll, pause flag, config overrides and pending trades."""
        saved = self.db.load_state("bankroll")
        if saved:
            bankroll = self.controller.state.bankroll
            for key, value in saved.items():
                if hasattr(bankroll, key):
                    setattr(bankroll, key, value)

        overrides = self.db.load_state("config_overrides", {})
        if overrides:
            try:
                self.controller.update_config(**overrides)
            except ValueError as e:
                logger.warning(f"Ignoring saved config overrides: {e}")

        # One trade per window survives a restart, dry runs included
        for trade in self.db.get_trades(limit=RESTORED_TRADE_LIMIT):
            self.controller.state.traded_windows.add(trade.window_start)
        for trade in self.db.get_pending_trades():
            self.controller.state.pending_windows.add(trade.window_start)
            self.controller.state.traded_windows.add(trade.window_start)

        bankroll = self.controller.state.bankroll
        logger.info(
            "State restored",
            extra={
                "available_balance": bankroll.available_balance,
                "cumulative_pnl": bankroll.cumulative_pnl,
                "paused": bankroll.paused,
                "pending_trades": len(self.controller.state.pending_windows)
            }
        )

    def persist_state(self) -> None:
        """Save bankroll and the non-default config values."""
        self.db.save_state("bankroll", self.controller.state.bankroll.to_dict())
        self.db.save_state("config_overrides", self._config_overrides())

    def _config_overrides(self) -> dict:
        overrides = {}
        for current, default in (
            (self.config.signal, SignalConfig()),
            (self.config.risk, RiskConfig()),
        ):
            defaults = dataclasses.asdict(default)
            for key, value in dataclasses.asdict(current).items():
                if key not in RESTART_ONLY_KEYS and defaults[key] != value:
                    overrides[key] = value
        return overrides

    async def initialize(self) -> None:
        """Initialize all components."""
        logger.info("Initializing latency arbitrage bot")

        if self.config.risk.dry_run:
            logger.warning("DRY RUN - orders are simulated")

        self.restore_state()

        await self.gamma_client.initialize()
        if self.clob_client:
            await self.clob_client.initialize()

        await self.price_feed.bootstrap()

        app = create_app(self)
        server_config = uvicorn.Config(
            app,
            host=self.config.control.api_host,
            port=self.config.control.api_port,
            log_level="warning"
        )
        self._server = uvicorn.Server(server_config)
        # Signals are handled by the bot, not uvicorn
        self._server.install_signal_handlers = lambda: None

        logger.info("Bot initialized successfully")

    async def run(self) -> None:
        """Run the main bot loop."""
        self._running = True
        logger.info(
            f"Starting bot (control API on {self.config.control.api_host}:{self.config.control.api_port})"
        )

        tasks = [
            self.price_feed.connect(),
            self._run_settlement(),
            self._run_stats_reporter(),
            self._wait_for_shutdown(),
        ]
        if self.secondary_feed:
            tasks.append(self.secondary_feed.run())
        if self._server:
            tasks.append(self._server.serve())

        try:
            await asyncio.gather(*tasks)
        except Exception as e:
            logger.error(f"Bot error: {e}")
            raise
        finally:
            await self.shutdown()

    async def _run_settlement(self) -> None:
        """Periodically settle pending trades."""
        while self._running:
            if await self._sleep(self.config.control.settlement_interval_seconds):
                break
            try:
                settled = await self.settler.settle_pending()
                if settled:
                    self.persist_state()
            except Exception as e:
                logger.error(f"Settlement error: {e}")

    async def _run_stats_reporter(self) -> None:
        """Periodically report statistics."""
        while self._running:
            if await self._sleep(60):
                break
            self._log_stats()

    async def _sleep(self, seconds: float) -> bool:
        """Sleep, waking early on shutdown. Returns True if shutting down."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self._shutdown_event.is_set()

    async def _wait_for_shutdown(self) -> None:
        """Wait for shutdown signal, then stop the long-running tasks."""
        await self._shutdown_event.wait()
        self._running = False
        await self.price_feed.stop()
        if self.secondary_feed:
            await self.secondary_feed.stop()
        if self._server:
            self._server.should_exit = True

    def _log_stats(self) -> None:
        """Log current statistics."""
        state = self.controller.state
        logger.info(
            "Bot statistics",
            extra={
                "ticks": state.ticks,
                "evaluations": state.evaluations,
                "dropped": state.dropped,
                "signals": state.signals,
                "wins": state.bankroll.win_count,
                "losses": state.bankroll.loss_count,
                "cumulative_pnl": state.bankroll.cumulative_pnl,
                "paused": state.bankroll.paused
            }
        )

    async def shutdown(self) -> None:
        """Gracefully shutdown the bot."""
        if self._shutdown_complete:
            return
        self._shutdown_complete = True
        logger.info("Shutting down bot")
        self._running = False
        self._shutdown_event.set()

        await self.price_feed.stop()
        if self.secondary_feed:
            await self.secondary_feed.stop()
        await self.gamma_client.close()

        self.persist_state()
        self._log_stats()
        self._server = None

        logger.info("Bot shutdown complete")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def setup_signal_handlers(bot: LatencyArbBot) -> None:
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        bot.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main() -> None:
    """Main entry point."""
    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    setup_logging(
        level=config.logging.log_level,
        json_format=config.logging.json_logging
    )

    logger.info("Starting BTC 5m latency arbitrage bot")

    bot = LatencyArbBot(config)
    setup_signal_handlers(bot)

    try:
        await bot.initialize()
        await bot.run()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await bot.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
