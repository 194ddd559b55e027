"""
FPL Companion - Services Module

HTTP client, upstream fetch with timeout / backend-first fallback /
fixed-delay retry, and one fetcher per resource the pages need.

Every fetcher raises only UpstreamError subclasses; turning those into
responses is the endpoint layer's job.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar
from urllib.parse import quote

import httpx

from fpl_companion.config import APP_CONFIG, UpstreamConfig
from fpl_companion.constants import (
    BACKEND_HEADERS, BROWSER_HEADERS, FPL_BASE_URL, FPL_PICK_POSITION_ALIASES,
)
from fpl_companion.errors import (
    MalformedResponse, NoUsableData, UpstreamError, UpstreamRejected, UpstreamUnavailable,
)
from fpl_companion.models import (
    BonusLeader, Fixture, ReferenceCatalog, StandingRow, TeamPayload, TenurePayload,
)
from fpl_companion.normalizers import (
    coerce_int, coerce_str, ensure_usable, normalize_fixtures, normalize_squad,
    normalize_squad_meta, normalize_standings, parse_live_points, parse_reference_catalog,
)
from fpl_companion.calculators import (
    apply_live_points, bonus_leaderboard, build_bonus_tally, needs_live_points,
    resolve_current_gameweek,
)
from fpl_companion.presentation import build_bonus_view


logger = logging.getLogger("fpl_companion")

T = TypeVar("T")


# ============ HTTP CLIENT ============

# Global HTTP client (initialized in lifespan)
http_client: Optional[httpx.AsyncClient] = None


def build_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=APP_CONFIG["upstream"].timeout,
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
        follow_redirects=True,
        transport=transport,
    )


async def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client, creating one if needed."""
    global http_client
    if http_client is None:
        http_client = build_http_client()
    return http_client


def _config(config: Optional[UpstreamConfig]) -> UpstreamConfig:
    return config or APP_CONFIG["upstream"]


# ============ SINGLE UPSTREAM CALL ============

async def request_json(
    method: str,
    url: str,
    resource: str,
    headers: Optional[Dict[str, str]] = None,
    config: Optional[UpstreamConfig] = None,
) -> Any:
    """
    One outbound call bounded by the wall-clock budget.

    Timeout -> UpstreamUnavailable(timed_out=True), network failure ->
    UpstreamUnavailable, non-2xx -> UpstreamRejected with a truncated body,
    non-JSON body -> MalformedResponse.
    """
    cfg = _config(config)
    client = await get_http_client()

    try:
        response = await asyncio.wait_for(
            client.request(method, url, headers=headers),
            timeout=cfg.timeout,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning(f"{resource}: no response within {cfg.timeout}s from {url}")
        raise UpstreamUnavailable(resource, f"Timed out after {cfg.timeout}s", timed_out=True)
    except httpx.HTTPError as e:
        logger.warning(f"{resource}: network error on {url}: {e}")
        raise UpstreamUnavailable(resource, f"{type(e).__name__}: {e}")

    if not response.is_success:
        logger.warning(f"{resource}: {url} returned {response.status_code}")
        raise UpstreamRejected(resource, response.status_code, response.text[:cfg.body_excerpt_chars])

    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponse(resource, f"Body is not JSON: {e}")


async def fetch_json(
    url: str,
    resource: str,
    headers: Optional[Dict[str, str]] = None,
    config: Optional[UpstreamConfig] = None,
) -> Any:
    return await request_json("GET", url, resource, headers=headers, config=config)


# ============ SOURCE SELECTION ============

@dataclass(frozen=True)
class UpstreamSource:
    label: str
    url: str
    headers: Dict[str, str]
    is_backend: bool = False


def upstream_sources(
    backend_path: Optional[str],
    fpl_path: Optional[str],
    config: Optional[UpstreamConfig] = None,
) -> List[UpstreamSource]:
    """Backend first when configured, then the public FPL API."""
    cfg = _config(config)
    sources = []
    if cfg.has_backend and backend_path is not None:
        sources.append(UpstreamSource("backend", f"{cfg.api_base}/{backend_path}", BACKEND_HEADERS, True))
    if fpl_path is not None:
        sources.append(UpstreamSource("fpl", f"{FPL_BASE_URL}/{fpl_path}", BROWSER_HEADERS))
    return sources


async def fetch_first_usable(
    resource: str,
    sources: Sequence[UpstreamSource],
    parse: Callable[[Any, UpstreamSource], T],
    config: Optional[UpstreamConfig] = None,
) -> T:
    """
    Try each source in order; the first one that fetches and parses wins.

    A parse failure (MalformedResponse, NoUsableData) on one source moves on
    to the next just like a network failure. The last error is raised when
    every source fails.
    """
    if not sources:
        raise UpstreamUnavailable(resource, "No upstream source configured")

    last_error: Optional[UpstreamError] = None
    for source in sources:
        try:
            raw = await fetch_json(source.url, resource, headers=source.headers, config=config)
            return parse(raw, source)
        except UpstreamError as e:
            last_error = e
            if source is not sources[-1]:
                logger.warning(f"{resource}: {source.label} source failed ({e}), trying next source")

    logger.error(f"{resource}: all {len(sources)} upstream source(s) failed: {last_error}")
    raise last_error


async def fetch_with_retry(
    operation: Callable[[], Awaitable[T]],
    resource: str,
    attempts: int,
    delay: float,
) -> T:
    """
    Run operation up to attempts times, sleeping a fixed delay in between.
    A 404 is final and is raised straight away.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except UpstreamError as e:
            if attempt >= attempts:
                raise
            if isinstance(e, UpstreamRejected) and e.status == 404:
                raise
            logger.warning(f"{resource}: attempt {attempt}/{attempts} failed ({e}), retry in {delay:.1f}s")
            await asyncio.sleep(delay)
    raise UpstreamUnavailable(resource, "No attempts made")


# ============ REFERENCE CATALOG ============

async def get_reference_catalog(config: Optional[UpstreamConfig] = None) -> ReferenceCatalog:
    return await fetch_first_usable(
        "reference catalog",
        upstream_sources("bootstrap-static", "bootstrap-static/", config),
        lambda raw, source: parse_reference_catalog(raw),
        config,
    )


async def get_catalog_or_empty(config: Optional[UpstreamConfig] = None) -> ReferenceCatalog:
    """Catalog for display-only lookups; names fall back to placeholders."""
    try:
        return await get_reference_catalog(config)
    except UpstreamError as e:
        logger.warning(f"Reference catalog unavailable, using placeholders: {e}")
        return ReferenceCatalog()


# ============ LEAGUE STANDINGS ============

def _parse_standings(raw: Any, source: UpstreamSource) -> List[StandingRow]:
    # An empty backend table falls through to FPL; an empty FPL table is real
    return ensure_usable(normalize_standings(raw), "standings", allow_empty=not source.is_backend)


async def get_standings(league_id, config: Optional[UpstreamConfig] = None) -> List[StandingRow]:
    cfg = _config(config)
    league = quote(str(league_id), safe="")
    sources = upstream_sources(f"league/{league}", f"leagues-classic/{league}/standings/", cfg)

    return await fetch_with_retry(
        lambda: fetch_first_usable("standings", sources, _parse_standings, cfg),
        "standings",
        attempts=cfg.standings_retry_attempts,
        delay=cfg.standings_retry_delay,
    )


# ============ FIXTURES & LIVE POINTS ============

async def get_fixtures(gw: Optional[int] = None, config: Optional[UpstreamConfig] = None) -> List[Fixture]:
    query = f"?event={gw}" if gw is not None else ""
    fixtures = await fetch_first_usable(
        "fixtures",
        upstream_sources(f"fixtures{query}", f"fixtures/{query}", config),
        lambda raw, source: ensure_usable(normalize_fixtures(raw), "fixtures"),
        config,
    )
    if gw is None:
        return fixtures
    return [f for f in fixtures if f.event == gw]


async def get_live_points(gw: int, config: Optional[UpstreamConfig] = None) -> Dict[int, int]:
    return await fetch_first_usable(
        "live points",
        upstream_sources(None, f"event/{gw}/live/", config),
        lambda raw, source: parse_live_points(raw),
        config,
    )


# ============ SQUADS ============

async def get_entry_profile(entry_id: int, config: Optional[UpstreamConfig] = None) -> Dict:
    raw = await fetch_first_usable(
        "entry",
        upstream_sources(None, f"entry/{entry_id}/", config),
        lambda raw, source: raw,
        config,
    )
    if not isinstance(raw, dict):
        raise MalformedResponse("entry", "Expected an object")
    return raw


async def _fetch_backend_squad(entry_id: int, config: UpstreamConfig) -> Optional[Any]:
    """Raw backend squad payload, or None when there is no backend or it failed."""
    if not config.has_backend:
        return None
    try:
        return await fetch_json(f"{config.api_base}/team/{entry_id}", "squad", headers=BACKEND_HEADERS, config=config)
    except UpstreamError as e:
        logger.warning(f"squad: backend failed for entry {entry_id} ({e}), falling back to FPL")
        return None


def squad_from_payload(raw: Any, catalog: ReferenceCatalog, entry_id: int) -> TeamPayload:
    """Squad in any of the backend's historical shapes."""
    picks = ensure_usable(normalize_squad(raw, catalog), "squad", allow_empty=False)
    meta = normalize_squad_meta(raw, default_gw=resolve_current_gameweek(catalog.events))
    return TeamPayload(
        entry_id=meta.entry_id or entry_id,
        team_name=meta.team_name,
        manager_name=meta.manager_name,
        gw=meta.gw,
        picks=picks,
    )


async def _fetch_fpl_squad(
    entry_id: int,
    profile: Dict,
    catalog: ReferenceCatalog,
    config: UpstreamConfig,
) -> TeamPayload:
    gw = resolve_current_gameweek(catalog.events)
    picks_raw = await fetch_first_usable(
        "squad",
        upstream_sources(None, f"entry/{entry_id}/event/{gw}/picks/", config),
        lambda raw, source: raw,
        config,
    )
    # FPL picks use "position" for the squad slot, so only element_type counts
    result = normalize_squad(picks_raw, catalog, position_aliases=FPL_PICK_POSITION_ALIASES)
    picks = ensure_usable(result, "squad", allow_empty=False)
    meta = normalize_squad_meta(profile, default_gw=gw)
    return TeamPayload(
        entry_id=meta.entry_id or entry_id,
        team_name=meta.team_name,
        manager_name=meta.manager_name,
        gw=gw,
        picks=picks,
    )


async def _with_live_points(payload: TeamPayload, config: UpstreamConfig) -> TeamPayload:
    if payload.gw <= 0 or not needs_live_points(payload.picks):
        return payload
    try:
        live = await get_live_points(payload.gw, config)
    except UpstreamError as e:
        logger.warning(f"Live points unavailable for GW{payload.gw}, leaving points empty: {e}")
        return payload
    return payload.model_copy(update={"picks": apply_live_points(payload.picks, live)})


async def get_squad(entry_id: int, config: Optional[UpstreamConfig] = None) -> TeamPayload:
    """
    A manager's squad for the current gameweek, enriched from the catalog.

    Backend first (fetched alongside the catalog); otherwise the FPL entry
    profile is fetched alongside the catalog and picks follow. Picks without
    points get live points times their multiplier. Raises if the catalog
    cannot be loaded.
    """
    cfg = _config(config)
    profile = None
    backend_raw = None

    if cfg.has_backend:
        catalog, backend_raw = await asyncio.gather(
            get_reference_catalog(cfg),
            _fetch_backend_squad(entry_id, cfg),
        )
    else:
        catalog, profile = await asyncio.gather(
            get_reference_catalog(cfg),
            get_entry_profile(entry_id, cfg),
        )

    payload = None
    if backend_raw is not None:
        try:
            payload = squad_from_payload(backend_raw, catalog, entry_id)
        except NoUsableData as e:
            logger.warning(f"squad: backend payload unusable for entry {entry_id} ({e}), falling back to FPL")

    if payload is None:
        if profile is None:
            profile = await get_entry_profile(entry_id, cfg)
        payload = await _fetch_fpl_squad(entry_id, profile, catalog, cfg)

    return await _with_live_points(payload, cfg)


# ============ BONUS ============

async def _bonus_inputs(gw: Optional[int], config: UpstreamConfig) -> Tuple[int, List[Fixture], ReferenceCatalog]:
    """
    Fixtures plus a display catalog. With a known gameweek both are fetched
    together; otherwise the catalog decides which gameweek to fetch.
    """
    if gw is not None:
        catalog, fixtures = await asyncio.gather(get_catalog_or_empty(config), get_fixtures(gw, config))
        return gw, fixtures, catalog
    catalog = await get_catalog_or_empty(config)
    gw = resolve_current_gameweek(catalog.events)
    return gw, await get_fixtures(gw, config), catalog


async def get_bonus_leaderboard(gw: Optional[int] = None, config: Optional[UpstreamConfig] = None) -> List[BonusLeader]:
    _, fixtures, catalog = await _bonus_inputs(gw, _config(config))
    return bonus_leaderboard(build_bonus_tally(fixtures), catalog)


async def get_bonus_view(gw: Optional[int] = None, config: Optional[UpstreamConfig] = None) -> Dict:
    gw, fixtures, catalog = await _bonus_inputs(gw, _config(config))
    return build_bonus_view(gw, fixtures, catalog)


# ============ TENURE ============

def tenure_from_history(entry_id: int, raw: Any) -> TenurePayload:
    past = raw.get("past") if isinstance(raw, dict) else None
    seasons = sorted(
        s for s in (coerce_str(p.get("season_name")) for p in (past or []) if isinstance(p, dict))
        if s is not None
    )
    first_season = seasons[0] if seasons else None
    since = None
    if first_season and "/" in first_season:
        since = coerce_int(first_season.split("/")[0])
    return TenurePayload(
        entry_id=entry_id,
        seasons_played=len(seasons),
        first_season=first_season,
        playing_since_year=since,
        seasons=seasons,
    )


async def get_tenure(entry_id: int, config: Optional[UpstreamConfig] = None) -> TenurePayload:
    return await fetch_first_usable(
        "entry history",
        upstream_sources(None, f"entry/{entry_id}/history/", config),
        lambda raw, source: tenure_from_history(entry_id, raw),
        config,
    )


# ============ SNAPSHOT HISTORY (backend only) ============

def _require_backend(resource: str, config: UpstreamConfig):
    if not config.has_backend:
        raise UpstreamUnavailable(resource, "No backend configured (set API_BASE)")


async def get_history_snapshots(league_id, config: Optional[UpstreamConfig] = None) -> List[Dict]:
    """Snapshots the backend has taken for a league: [{gw, taken_at}]."""
    cfg = _config(config)
    _require_backend("history", cfg)
    raw = await fetch_json(
        f"{cfg.api_base}/history/{quote(str(league_id), safe='')}", "history",
        headers=BACKEND_HEADERS, config=cfg,
    )
    items = raw.get("snapshots") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise MalformedResponse("history", "No snapshots list in payload")

    snapshots = []
    for item in items:
        if not isinstance(item, dict):
            continue
        gw = coerce_int(item.get("gw"))
        if gw is None:
            continue
        snapshots.append({"gw": gw, "taken_at": coerce_str(item.get("taken_at"))})
    return snapshots


async def get_history_snapshot(league_id, gw: int, config: Optional[UpstreamConfig] = None) -> Dict:
    """Standings as they were saved at the end of a gameweek."""
    cfg = _config(config)
    _require_backend("history", cfg)
    raw = await fetch_json(
        f"{cfg.api_base}/history/{quote(str(league_id), safe='')}/{gw}", "history",
        headers=BACKEND_HEADERS, config=cfg,
    )
    rows = ensure_usable(normalize_standings(raw), "history")
    league = raw.get("league") if isinstance(raw, dict) else None
    name = coerce_str(league.get("name")) if isinstance(league, dict) else None
    return {"league_name": name or "League", "gw": gw, "standings": rows}


async def trigger_autosnapshot(league_id, config: Optional[UpstreamConfig] = None) -> Any:
    cfg = _config(config)
    _require_backend("autosnapshot", cfg)
    return await request_json(
        "POST", f"{cfg.api_base}/autosnapshot/{quote(str(league_id), safe='')}", "autosnapshot",
        headers=BACKEND_HEADERS, config=cfg,
    )
