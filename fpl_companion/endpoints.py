"""
FPL Companion - Endpoints Module

FastAPI app initialization, CORS middleware, lifespan handler, the
upstream error boundary and all API endpoint handlers.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fpl_companion.config import APP_CONFIG
from fpl_companion.constants import NO_SNAPSHOT_MESSAGE
from fpl_companion.errors import MalformedResponse, NoUsableData, UpstreamError, UpstreamRejected
from fpl_companion.models import LeaguePayload
from fpl_companion.presentation import group_picks_by_position
from fpl_companion.services import (
    build_http_client,
    get_reference_catalog, get_standings, get_squad, get_fixtures,
    get_bonus_leaderboard, get_bonus_view, get_tenure,
    get_history_snapshots, get_history_snapshot, trigger_autosnapshot,
)
import fpl_companion.services as services_module


logger = logging.getLogger("fpl_companion")


# ============ LIFESPAN ============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup - create shared HTTP client
    services_module.http_client = build_http_client()
    cfg = APP_CONFIG["upstream"]
    if cfg.has_backend:
        logger.info(f"Backend configured at {cfg.api_base}; FPL API is the fallback")
    else:
        logger.info("No backend configured; serving straight from the FPL API")

    yield

    # Shutdown - close HTTP client
    if services_module.http_client:
        await services_module.http_client.aclose()
        services_module.http_client = None


# ============ APP INITIALIZATION ============

app = FastAPI(title="FPL Companion API", version="1.0.0", lifespan=lifespan)

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=False,  # Set to True only with specific origins, not "*"
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ ERROR BOUNDARY ============

@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    """Friendly message for the page, diagnostics for whoever is debugging."""
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ============ BOOTSTRAP ============

@app.get("/api/bootstrap-static")
async def get_bootstrap():
    catalog = await get_reference_catalog()
    return catalog.to_dict()


# ============ LEAGUE ============

@app.get("/api/league", response_model=LeaguePayload)
async def get_default_league():
    return await get_league(APP_CONFIG["upstream"].league_id)


@app.get("/api/league/{league_id}", response_model=LeaguePayload)
async def get_league(league_id: str):
    rows = await get_standings(league_id)
    return LeaguePayload(standings=rows)


# ============ TEAM ============

@app.get("/api/team/{entry_id}")
async def get_team(entry_id: int):
    payload = await get_squad(entry_id)
    data = payload.model_dump(mode="json")
    data["grouped"] = {
        label: [p.model_dump(mode="json") for p in picks]
        for label, picks in group_picks_by_position(payload.picks).items()
    }
    return data


@app.get("/api/tenure/{entry_id}")
async def get_entry_tenure(entry_id: int):
    return await get_tenure(entry_id)


# ============ FIXTURES ============

@app.get("/api/fixtures")
async def list_fixtures(event: Optional[int] = Query(None, ge=1)):
    return await get_fixtures(event)


@app.get("/api/fixtures/{event}")
async def list_fixtures_for_event(event: str):
    try:
        gw = int(event)
    except ValueError:
        raise HTTPException(status_code=400, detail="Bad event id")
    return await get_fixtures(gw)


# ============ BONUS ============

@app.get("/api/bonus")
async def bonus_view(gw: Optional[int] = Query(None, ge=1)):
    return await get_bonus_view(gw)


@app.get("/api/bonus/leaderboard")
async def bonus_leaderboard_endpoint(gw: Optional[int] = Query(None, ge=1)):
    return await get_bonus_leaderboard(gw)


# ============ SNAPSHOT HISTORY ============

def _no_snapshot(exc: UpstreamError, gw: Optional[int] = None) -> JSONResponse:
    logger.info(f"No snapshot available ({exc})")
    message = NO_SNAPSHOT_MESSAGE
    if gw is not None:
        message = f"A snapshot for GW {gw} hasn't been taken yet. Try again after the Gameweek ends."
    content = exc.to_dict()
    content["error"] = message
    return JSONResponse(status_code=404, content=content)


@app.get("/api/history")
async def history_list():
    league_id = APP_CONFIG["upstream"].league_id
    try:
        snapshots = await get_history_snapshots(league_id)
    except (UpstreamRejected, MalformedResponse, NoUsableData) as e:
        return _no_snapshot(e)
    return {"league_id": league_id, "snapshots": snapshots}


@app.get("/api/history/{gw}")
async def history_gameweek(gw: int):
    league_id = APP_CONFIG["upstream"].league_id
    try:
        return await get_history_snapshot(league_id, gw)
    except (UpstreamRejected, MalformedResponse, NoUsableData) as e:
        return _no_snapshot(e, gw)


@app.post("/api/cron/autosnapshot")
async def cron_autosnapshot():
    return await trigger_autosnapshot(APP_CONFIG["upstream"].league_id)


# ============ DEBUG & HEALTH ============

@app.get("/api/debug/config")
async def debug_config():
    cfg = APP_CONFIG["upstream"]
    return {
        "api_base": cfg.api_base or None,
        "league_id": cfg.league_id,
        "timeout": cfg.timeout,
        "env": os.environ.get("APP_ENV"),
    }


@app.get("/api/health")
async def health_check():
    cfg = APP_CONFIG["upstream"]
    return {
        "status": "ok",
        "backend_configured": cfg.has_backend,
        "deep_search_enabled": APP_CONFIG["normalizer"].deep_search_enabled,
    }
