"""Utility modules for the latency arbitrage bot."""

from .logger import setup_logging, get_logger, TradeLogger
from .channel import Channel, KeyedDispatcher

__all__ = ["setup_logging", "get_logger", "TradeLogger", "Channel", "KeyedDispatcher"]
