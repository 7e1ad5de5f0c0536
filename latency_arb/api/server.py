"""
FastAPI status server for the latency arbitrage bot.
Read-only views over the ledger, live prices and recent opportunities.
"""
from datetime import datetime, timezone

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from ..engine.position_manager import PositionManager
from ..services.reporting import ReportingService
from ..strategy.aggregator import PriceAggregator
from ..strategy.lag import LagStrategy


def create_app(
    manager: PositionManager,
    aggregator: PriceAggregator,
    strategy: LagStrategy,
    reporting: ReportingService
) -> FastAPI:
    """Build the status API over the running components."""
    app = FastAPI(title="Latency Arbitrage Bot API")

    # Enable CORS for dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        """Health check."""
        return {
            "status": "ok",
            "mode": manager.mode.value,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.get("/api/stats")
    async def api_stats():
        """Ledger summary."""
        return JSONResponse(content=manager.get_stats())

    @app.get("/api/prices")
    async def api_prices():
        """Spot, YES price and anchor for each tracked asset."""
        rows = []
        for asset in aggregator.assets:
            spot = aggregator.get_price(asset)
            quote = strategy.get_latest_quote(asset)
            strike = strategy.resolver.get_cached(quote.market_id) if quote else None
            rows.append({
                "asset": asset,
                "spot": spot.price if spot else 0,
                "sources": aggregator.get_source_prices(asset),
                "poly_yes": quote.yes_price if quote else 0,
                "strike": strike or 0,
                "market_id": quote.market_id if quote else None,
            })
        return JSONResponse(content=rows)

    @app.get("/api/opportunities")
    async def api_opportunities(limit: int = Query(10, ge=0, le=50)):
        """Most recent opportunities, oldest first."""
        opps = strategy.recent_opportunities(limit)
        return JSONResponse(content=[opp.to_dict() for opp in opps])

    @app.get("/api/trades")
    async def api_trades():
        """All trades, open and closed."""
        trades = manager.get_trades()
        return JSONResponse(content={"trades": [t.to_dict() for t in trades], "count": len(trades)})

    @app.get("/api/report")
    async def api_report():
        """Trailing 24h report."""
        report = reporting.daily_report()
        return JSONResponse(content={**report.to_dict(), "text": report.format()})

    return app


def build_server(app: FastAPI, host: str = "0.0.0.0", port: int = 3001) -> uvicorn.Server:
    """Create a uvicorn server that can be awaited inside the bot's event loop."""
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    return uvicorn.Server(config)
