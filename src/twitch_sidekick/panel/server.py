"""FastAPI control panel: status page and JSON API over the orchestrator."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

if TYPE_CHECKING:
    from twitch_sidekick.orchestrator import BotOrchestrator

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


class ValueBody(BaseModel):
    value: float


class ManualClipBody(BaseModel):
    title: str = "Manual Clip"


class WordsBody(BaseModel):
    words: list[str]


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


def create_app(bot: BotOrchestrator) -> FastAPI:
    """Create the control panel FastAPI app.

    Args:
        bot: The running orchestrator. Every route goes through its
            configuration surface.

    Returns:
        A configured FastAPI application.
    """
    app = FastAPI(title="Twitch Sidekick Panel")
    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request):
        """Status page."""
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "status": bot.status(),
                "moments": bot.recent_moments(limit=10),
                "clips": bot.recent_clips(limit=10),
                "activity": bot.recent_activity(limit=20),
            },
        )

    @app.get("/api/status")
    async def status():
        return bot.status()

    @app.post("/api/layers/{layer}/toggle")
    async def toggle_layer(layer: str):
        try:
            enabled = bot.toggle_layer(layer)
        except ValueError as e:
            return _error(str(e))
        return {"success": True, "layer": layer, "enabled": enabled}

    @app.get("/api/gameplay/stats")
    async def gameplay_stats():
        return bot.gameplay_stats()

    @app.get("/api/gameplay/moments")
    async def gameplay_moments(limit: int = 10):
        return {"moments": [m.to_dict() for m in bot.recent_moments(limit=limit)]}

    @app.post("/api/gameplay/reset")
    async def gameplay_reset():
        await bot.reset_gameplay()
        return {"success": True, "message": "Gameplay data reset"}

    @app.get("/api/clips")
    async def clips(limit: int = 10):
        return {
            "clips": [c.to_dict() for c in bot.recent_clips(limit=limit)],
            "stats": bot.pipeline.stats(),
        }

    @app.post("/api/clips/manual")
    async def manual_clip(body: ManualClipBody):
        title = body.title.strip()
        if not title:
            return _error("Clip title must not be empty")
        request = await bot.create_manual_clip(title)
        return {"success": True, "message": f"Clip queued: {title}", "request": request.to_dict()}

    @app.get("/api/ai/stats")
    async def ai_stats():
        return bot.ai_stats()

    @app.post("/api/ai/intensity")
    async def set_intensity(body: ValueBody):
        value = bot.set_intensity(body.value)
        return {"success": True, "intensity": value}

    @app.post("/api/ai/min-interval")
    async def set_min_interval(body: ValueBody):
        try:
            value = bot.set_min_interval(body.value)
        except (ValueError, OverflowError) as e:
            return _error(str(e))
        return {"success": True, "min_interval_ms": value}

    @app.post("/api/clips/cooldown")
    async def set_clip_cooldown(body: ValueBody):
        try:
            value = bot.set_clip_cooldown(body.value)
        except (ValueError, OverflowError) as e:
            return _error(str(e))
        return {"success": True, "cooldown_ms": value}

    @app.post("/api/observer/sensitivity")
    async def set_sensitivity(body: ValueBody):
        value = bot.set_sensitivity(body.value)
        return {"success": True, "sensitivity": value}

    @app.get("/api/filters/words")
    async def denied_words():
        return {"words": sorted(bot.denied_words)}

    @app.post("/api/filters/words")
    async def set_denied_words(body: WordsBody):
        words = bot.set_denied_words(body.words)
        return {"success": True, "words": words}

    @app.get("/api/activity")
    async def activity(limit: int = 50, kind: str | None = None):
        if limit < 1:
            return _error("limit must be positive")
        return {"activity": [e.to_dict() for e in bot.recent_activity(limit=limit, kind=kind)]}

    return app
