"""
Configuration module for the latency arbitrage bot.
Loads settings from environment variables with validation.
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

from .models import OperatingMode

# Load .env file if present
load_dotenv()


@dataclass
class StrategyConfig:
    """Lag signal thresholds. Policy parameters, tuned rather than derived."""
    momentum_threshold_pct: float = 0.05  # 0.05% move is significant on a 15m candle
    yes_price_ceiling: float = 0.75  # UP move + YES below this = lagging
    yes_price_floor: float = 0.25    # DOWN move + YES above this = lagging
    yes_implied_probability: float = 0.95
    no_implied_probability: float = 0.05
    opportunity_buffer_size: int = 50


@dataclass
class ResolverConfig:
    """Reference (anchor) price resolution."""
    lookahead_seconds: float = 60.0
    debounce_seconds: float = 5.0
    request_timeout_seconds: float = 3.0


@dataclass
class AggregatorConfig:
    """Spot price aggregation."""
    assets: tuple[str, ...] = ("BTC", "ETH", "SOL")
    stale_after_seconds: Optional[float] = None  # None keeps every source forever


@dataclass
class EngineConfig:
    """Trade engine sizing and exit rules."""
    mode: OperatingMode = OperatingMode.SIMULATION
    bet_size: float = 10.0
    max_trade_size: float = 10.0
    starting_balance: float = 1000.0
    take_profit_ratio: float = 0.5
    stop_loss_ratio: float = 0.5
    min_entry_price: float = 0.01
    buy_yes_above: float = 0.8  # implied probability gate for BUY_YES
    buy_no_below: float = 0.2   # implied probability gate for BUY_NO


@dataclass
class WalletConfig:
    """Credentials for live order signing. Only required in live mode."""
    private_key: str = ""
    funder_address: str = ""
    signature_type: Optional[int] = None

    # Chain ID for Polygon Mainnet
    chain_id: int = 137
    clob_url: str = "https://clob.polymarket.com"


@dataclass
class StoreConfig:
    trade_store_path: str = "data/trades.db"


@dataclass
class ServerConfig:
    """Status API settings."""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3001


@dataclass
class LogConfig:
    """Logging configuration."""
    log_level: str = "INFO"
    json_logging: bool = True


@dataclass
class Config:
    """Main configuration container."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LogConfig = field(default_factory=LogConfig)


def get_env(key: str, default: Optional[str] = None, required: bool = True) -> str:
    """Get environment variable with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable {key} is not set")
    return value or ""


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes")


def get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    value = os.getenv(key, str(default))
    return int(value)


def get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    value = os.getenv(key, str(default))
    return float(value)


def get_env_optional_float(key: str) -> Optional[float]:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return None
    return float(value)


def get_operating_mode() -> OperatingMode:
    """Resolve the operating mode; LIVE_TRADING=true is honoured as a shortcut."""
    if get_env_bool("LIVE_TRADING", False):
        return OperatingMode.LIVE_TRADING

    raw = os.getenv("TRADING_MODE", OperatingMode.SIMULATION.value).strip().upper()
    try:
        return OperatingMode(raw)
    except ValueError:
        valid = ", ".join(m.value for m in OperatingMode)
        raise ValueError(f"TRADING_MODE must be one of {valid}, got {raw!r}")


def load_config() -> Config:
    """Load and validate configuration from environment."""
    mode = get_operating_mode()
    live = mode == OperatingMode.LIVE_TRADING

    signature_type = os.getenv("SIGNATURE_TYPE")

    config = Config(
        strategy=StrategyConfig(
            momentum_threshold_pct=get_env_float("MOMENTUM_THRESHOLD_PCT", 0.05),
            yes_price_ceiling=get_env_float("YES_PRICE_CEILING", 0.75),
            yes_price_floor=get_env_float("YES_PRICE_FLOOR", 0.25),
            yes_implied_probability=get_env_float("YES_IMPLIED_PROBABILITY", 0.95),
            no_implied_probability=get_env_float("NO_IMPLIED_PROBABILITY", 0.05),
            opportunity_buffer_size=get_env_int("OPPORTUNITY_BUFFER_SIZE", 50),
        ),
        resolver=ResolverConfig(
            lookahead_seconds=get_env_float("ANCHOR_LOOKAHEAD_SECONDS", 60.0),
            debounce_seconds=get_env_float("ANCHOR_DEBOUNCE_SECONDS", 5.0),
            request_timeout_seconds=get_env_float("ANCHOR_REQUEST_TIMEOUT_SECONDS", 3.0),
        ),
        aggregator=AggregatorConfig(
            stale_after_seconds=get_env_optional_float("SPOT_STALE_AFTER_SECONDS"),
        ),
        engine=EngineConfig(
            mode=mode,
            bet_size=get_env_float("BET_SIZE_USDC", 10.0),
            max_trade_size=get_env_float("MAX_TRADE_SIZE_USDC", 10.0),
            starting_balance=get_env_float("STARTING_BALANCE", 1000.0),
            take_profit_ratio=get_env_float("TAKE_PROFIT_RATIO", 0.5),
            stop_loss_ratio=get_env_float("STOP_LOSS_RATIO", 0.5),
            min_entry_price=get_env_float("MIN_ENTRY_PRICE", 0.01),
        ),
        wallet=WalletConfig(
            private_key=get_env("PRIVATE_KEY", required=live),
            funder_address=get_env("FUNDER_ADDRESS", required=False),
            signature_type=int(signature_type) if signature_type else None,
        ),
        store=StoreConfig(
            trade_store_path=get_env("TRADE_STORE_PATH", "data/trades.db", required=False),
        ),
        server=ServerConfig(
            enabled=get_env_bool("API_ENABLED", True),
            host=get_env("API_HOST", "0.0.0.0", required=False),
            port=get_env_int("API_PORT", 3001),
        ),
        logging=LogConfig(
            log_level=get_env("LOG_LEVEL", "INFO", required=False),
            json_logging=get_env_bool("JSON_LOGGING", True),
        ),
    )

    validate_config(config)
    return config


def validate_config(config: Config) -> None:
    """Reject values that would make the engine misbehave."""
    strategy = config.strategy
    if strategy.momentum_threshold_pct < 0:
        raise ValueError(f"MOMENTUM_THRESHOLD_PCT must be >= 0, got {strategy.momentum_threshold_pct}")
    if not 0.0 <= strategy.yes_price_floor <= strategy.yes_price_ceiling <= 1.0:
        raise ValueError("YES_PRICE_FLOOR/YES_PRICE_CEILING must satisfy 0 <= floor <= ceiling <= 1")
    if strategy.opportunity_buffer_size < 1:
        raise ValueError("OPPORTUNITY_BUFFER_SIZE must be >= 1")

    engine = config.engine
    if engine.bet_size <= 0 or engine.max_trade_size <= 0:
        raise ValueError("BET_SIZE_USDC and MAX_TRADE_SIZE_USDC must be positive")
    if engine.take_profit_ratio <= 0 or engine.stop_loss_ratio <= 0:
        raise ValueError("TAKE_PROFIT_RATIO and STOP_LOSS_RATIO must be positive")

    stale = config.aggregator.stale_after_seconds
    if stale is not None and stale <= 0:
        raise ValueError(f"SPOT_STALE_AFTER_SECONDS must be positive, got {stale}")
