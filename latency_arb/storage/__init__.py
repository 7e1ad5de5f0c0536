from .trade_store import TradeStore, TradeStoreError, SqliteTradeStore, JsonTradeStore, open_trade_store

__all__ = ["TradeStore", "TradeStoreError", "SqliteTradeStore", "JsonTradeStore", "open_trade_store"]
