"""Dashboard/control API for a running bot"""

import json
import logging
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ragtrader.utils.logging_utils import daily_log_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["bot"])


def _error(e: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": str(e)})


def _bot(request: Request):
    return request.app.state.bot


def read_recent_log_entries(log_dir: Optional[str], limit: int = 50) -> List[Dict[str, Any]]:
    """Last ``limit`` JSON lines of today's trading log; unreadable lines are skipped."""
    if not log_dir or limit <= 0:
        return []
    path = daily_log_path(log_dir)
    if not path.exists():
        return []

    with open(path, encoding="utf-8") as f:
        tail = deque(f, maxlen=limit)

    entries = []
    for line in tail:
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return entries


@router.get("/status")
async def get_status(request: Request):
    try:
        status = _bot(request).engine.get_status()
        return {"success": True, "status": status.to_dict()}
    except Exception as e:
        logger.error(f"Failed to get status: {e}")
        return _error(e)


@router.get("/portfolio")
async def get_portfolio(request: Request):
    try:
        portfolio = await _bot(request).engine.fetch_portfolio()
        return {"success": True, "portfolio": portfolio.to_dict()}
    except Exception as e:
        logger.error(f"Failed to get portfolio: {e}")
        return _error(e)


@router.post("/start")
async def start_bot(request: Request):
    try:
        engine = _bot(request).engine
        await engine.start()
        return {"success": True, "message": "Trading bot started", "status": engine.get_status().to_dict()}
    except Exception as e:
        logger.error(f"Failed to start trading bot: {e}")
        return _error(e)


@router.post("/stop")
async def stop_bot(request: Request):
    try:
        engine = _bot(request).engine
        await engine.stop()
        return {"success": True, "message": "Trading bot stopped", "status": engine.get_status().to_dict()}
    except Exception as e:
        logger.error(f"Failed to stop trading bot: {e}")
        return _error(e)


@router.get("/logs")
async def get_logs(request: Request, limit: int = Query(50, ge=0, le=1000)):
    try:
        bot = _bot(request)
        status = bot.engine.get_status()
        log_dir = bot.config.logging.log_dir if getattr(bot, "config", None) else None
        return {
            "success": True,
            "logs": {
                "last_decision": status.last_decision.to_dict() if status.last_decision else None,
                "cycle_count": status.cycle_count,
                "last_error": status.last_error,
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "entries": read_recent_log_entries(log_dir, limit),
            },
        }
    except Exception as e:
        logger.error(f"Failed to get logs: {e}")
        return _error(e)


def create_app(bot) -> FastAPI:
    """FastAPI app bound to one TradingBot; optionally serves ./public as static files."""
    app = FastAPI(title="RAG Trading Bot")
    app.state.bot = bot
    app.include_router(router)

    public_dir = Path("public")
    if public_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(public_dir), html=True), name="public")

    return app


async def serve(bot, host: str = "0.0.0.0", port: int = 3000) -> None:
    """Run the dashboard in the current event loop until cancelled or interrupted."""
    config = uvicorn.Config(create_app(bot), host=host, port=port, log_config=None)
    server = uvicorn.Server(config)
    logger.info(f"🌐 Dashboard listening on http://{host}:{port}")
    await server.serve()
