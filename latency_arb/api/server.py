"""
FastAPI control surface for the latency arbitrage bot.
Status, trade history, hourly stats, post-mortems, pause/resume and live config.
"""
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..execution.settlement import read_post_mortems
from ..utils.logger import get_logger

logger = get_logger("api")


class PauseRequest(BaseModel):
    reason: str = "Paused by operator"


def create_app(bot) -> FastAPI:
    """
    Build the control API.

    Args:
        bot: Object exposing controller, db, config, started_at and
             persist_state()
    """
    app = FastAPI(title="BTC 5m Latency Arb Control API")

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
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/status")
    async def status():
        """Controller state, prices, counters and recent trades."""
        controller_status = bot.controller.status()
        recent = [t.to_dict() for t in bot.db.get_trades(limit=5)]
        return {
            **controller_status,
            "dry_run": bot.config.risk.dry_run,
            "uptime_seconds": int(time.time() - bot.started_at),
            "recent_trades": recent,
        }

    @app.get("/trades")
    async def trades(limit: int = 50, status: Optional[str] = None):
        """Most recent trades first."""
        records = bot.db.get_trades(limit=limit, status=status)
        return {"trades": [t.to_dict() for t in records], "count": len(records)}

    @app.get("/stats/hourly")
    async def stats_hourly():
        """Settled trade performance by UTC hour of entry."""
        hourly = bot.db.hourly_stats()
        return {"hours": {str(h): v for h, v in hourly.items()}}

    @app.get("/post-mortems")
    async def post_mortems(limit: int = 50):
        """Most recent losing-trade post-mortems first."""
        records = read_post_mortems(bot.config.control.post_mortem_path, limit=limit)
        patterns: dict[str, int] = {}
        for record in records:
            patterns[record["pattern"]] = patterns.get(record["pattern"], 0) + 1
        return {"post_mortems": records, "count": len(records), "patterns": patterns}

    @app.post("/pause")
    async def pause(request: Optional[PauseRequest] = None):
        reason = request.reason if request else PauseRequest().reason
        bot.controller.pause(reason)
        bot.persist_state()
        return {"paused": True, "reason": reason}

    @app.post("/resume")
    async def resume():
        bot.controller.resume()
        bot.persist_state()
        return {"paused": False}

    @app.post("/config")
    async def update_config(changes: dict):
        """Apply runtime overrides to signal/risk settings."""
        try:
            applied = bot.controller.update_config(**changes)
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        bot.persist_state()
        return {"applied": applied}

    return app
