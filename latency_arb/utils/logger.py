"""
Structured logging for the latency arbitrage bot.
Supports JSON output for log shipping.
"""

import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger

ROOT_LOGGER = "latency_arb"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always carries level, logger and timestamp."""

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
        json_format: Whether to emit JSON lines
        logger_name: Optional specific logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name or ROOT_LOGGER)
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
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class TradeLogger:
    """Specialized logger for signal and trade lifecycle events."""

    def __init__(self):
        self.logger = get_logger("trades")

    def opportunity_detected(
        self,
        market_id: str,
        asset: str,
        delta_percent: float,
        yes_price: float,
        implied_probability: float
    ):
        """Log when a lag signal fires."""
        self.logger.info(
            "Lag opportunity detected",
            extra={
                "event": "opportunity_detected",
                "market_id": market_id,
                "asset": asset,
                "delta_percent": delta_percent,
                "yes_price": yes_price,
                "implied_probability": implied_probability
            }
        )

    def anchor_resolved(
        self,
        market_id: str,
        asset: str,
        price: float,
        source: str
    ):
        """Log when a market's reference price is resolved."""
        self.logger.info(
            "Reference price resolved",
            extra={
                "event": "anchor_resolved",
                "market_id": market_id,
                "asset": asset,
                "price": price,
                "source": source
            }
        )

    def trade_opened(
        self,
        trade_id: str,
        market_id: str,
        direction: str,
        price: float,
        size: float,
        mode: str
    ):
        """Log when a position is opened."""
        self.logger.info(
            "Trade opened",
            extra={
                "event": "trade_opened",
                "trade_id": trade_id,
                "market_id": market_id,
                "direction": direction,
                "price": price,
                "size": size,
                "mode": mode
            }
        )

    def trade_closed(
        self,
        trade_id: str,
        market_id: str,
        reason: str,
        exit_price: float,
        realized_pnl: float
    ):
        """Log when a position is closed."""
        self.logger.info(
            "Trade closed",
            extra={
                "event": "trade_closed",
                "trade_id": trade_id,
                "market_id": market_id,
                "reason": reason,
                "exit_price": exit_price,
                "realized_pnl": realized_pnl
            }
        )

    def trade_failed(
        self,
        market_id: str,
        reason: str,
        error: Optional[str] = None,
        trade_id: Optional[str] = None
    ):
        """Log when an entry or exit order fails."""
        self.logger.error(
            "Trade failed",
            extra={
                "event": "trade_failed",
                "trade_id": trade_id,
                "market_id": market_id,
                "reason": reason,
                "error": error
            }
        )
