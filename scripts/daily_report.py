#!/usr/bin/env python3
"""
Print the trailing 24h trading report from the trade store.

Reads TRADE_STORE_PATH (default data/trades.db) from the environment or .env.
"""

from latency_arb.config import get_env
from latency_arb.services.reporting import ReportingService
from latency_arb.storage.trade_store import open_trade_store


def main():
    path = get_env("TRADE_STORE_PATH", "data/trades.db", required=False)
    store = open_trade_store(path)
    report = ReportingService(store).daily_report()
    print(report.format())


if __name__ == "__main__":
    main()
