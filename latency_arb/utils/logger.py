"""
Structured logging for the latency arbitrage bot.
Supports JSON logging for log shipping and post-trade analysis.
"""

import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with additional fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['timestamp'] = self.formatTime(record, self.datefmt)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    logger_name: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Whether to use JSON format
        logger_name: Optional specific logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name or "latency_arb")
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger with the given name."""
    return logging.getLogger(f"latency_arb.{name}")


class TradeLogger:
    """Specialized logger for signal and trade events."""

    def __init__(self):
        self.logger = get_logger("trades")

    def signal_generated(
        self,
        window_start: int,
        direction: str,
        edge_cents: float,
        fair_value: float,
        venue_price: float,
        size: float
    ):
        """Log when an actionable signal is produced."""
        self.logger.info(
            "Signal generated",
            extra={
                "event": "signal_generated",
                "window_start": window_start,
                "direction": direction,
                "edge_cents": edge_cents,
                "fair_value": fair_value,
                "venue_price": venue_price,
                "size_usd": size
            }
        )

    def evaluation_skipped(self, window_start: int, reason: str):
        """Log a routine skip."""
        self.logger.info(
            "Evaluation skipped",
            extra={
                "event": "evaluation_skipped",
                "window_start": window_start,
                "reason": reason
            }
        )

    def order_placed(
        self,
        trade_id: int,
        window_start: int,
        direction: str,
        shares: int,
        price: float,
        dry_run: bool
    ):
        """Log when an order is placed (or simulated)."""
        self.logger.info(
            "Order placed",
            extra={
                "event": "order_placed",
                "trade_id": trade_id,
                "window_start": window_start,
                "direction": direction,
                "shares": shares,
                "price": price,
                "dry_run": dry_run
            }
        )

    def order_failed(self, window_start: int, direction: str, error: Optional[str] = None):
        """Log when order placement fails."""
        self.logger.error(
            "Order failed",
            extra={
                "event": "order_failed",
                "window_start": window_start,
                "direction": direction,
                "error": error
            }
        )

    def trade_settled(
        self,
        trade_id: int,
        window_start: int,
        direction: str,
        result: str,
        pnl: float,
        total_pnl: float
    ):
        """Log when a trade resolves."""
        self.logger.info(
            "Trade settled",
            extra={
                "event": "trade_settled",
                "trade_id": trade_id,
                "window_start": window_start,
                "direction": direction,
                "result": result,
                "pnl_usd": pnl,
                "total_pnl_usd": total_pnl
            }
        )

    def circuit_breaker_tripped(self, total_pnl: float, pnl_floor: float):
        """Log when trading halts on the P&L floor."""
        self.logger.error(
            "Circuit breaker tripped - trading paused",
            extra={
                "event": "circuit_breaker_tripped",
                "total_pnl_usd": total_pnl,
                "pnl_floor_usd": pnl_floor
            }
        )
