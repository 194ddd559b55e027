"""
FPL Companion - Normalizers Module

Turns upstream JSON of uncertain shape into canonical records.

The FPL API and our own backend have served the same resources under
several different shapes over time. Each normalizer:

1. Uses the payload directly if it is already a list of records.
2. Otherwise probes a fixed, ordered list of container keys.
3. Optionally falls back to a bounded breadth-first search for anything
   that looks like the target record (see ShapeSearch).
4. Maps every element through ordered field aliases.
5. Drops elements that fail the required-field check, counting them.

Records are never reordered here.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, List, Dict, Sequence, Tuple, Union

from fpl_companion.config import APP_CONFIG, NormalizerConfig
from fpl_companion.constants import (
    POSITION_ID_MAP, DEFAULT_TEAM_NAME, DEFAULT_MANAGER_NAME,
    SQUAD_CONTAINERS, STANDINGS_CONTAINERS, FIXTURE_CONTAINERS,
    PICK_SIGNAL_KEYS, STANDING_SIGNAL_KEYS, FIXTURE_SIGNAL_KEYS,
    PICK_ID_ALIASES, PICK_POSITION_ALIASES, PICK_TEAM_ALIASES, PICK_NAME_ALIASES,
    PICK_POINTS_ALIASES, PICK_CAPTAIN_ALIASES, PICK_VICE_ALIASES, PICK_MULTIPLIER_ALIASES,
    STANDING_ENTRY_ALIASES, STANDING_TEAM_ALIASES, STANDING_MANAGER_ALIASES,
    STANDING_TOTAL_ALIASES, STANDING_EVENT_TOTAL_ALIASES,
    FIXTURE_ID_ALIASES, FIXTURE_HOME_ALIASES, FIXTURE_AWAY_ALIASES,
    FIXTURE_HOME_SCORE_ALIASES, FIXTURE_AWAY_SCORE_ALIASES, FIXTURE_KICKOFF_ALIASES,
    META_ENTRY_ALIASES, META_TEAM_ALIASES, META_MANAGER_ALIASES, META_GW_ALIASES,
    player_placeholder, team_placeholder,
)
from fpl_companion.errors import MalformedResponse, NoUsableData
from fpl_companion.calculators import enrich_pick
from fpl_companion.models import (
    Element, Event, Fixture, FixtureStat, PartialPick, Pick, Position,
    ReferenceCatalog, SquadMeta, StandingRow, StatEntry, Team,
)


logger = logging.getLogger("fpl_companion")

ContainerPath = Union[str, Tuple[str, ...]]

ROOT_CONTAINER = "<root>"
DEEP_SEARCH_CONTAINER = "<deep-search>"


# ============ COERCION ============

def coerce_int(value: Any) -> Optional[int]:
    """Integer from int, integral float or numeric string; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return coerce_int(float(text))
        except ValueError:
            return None
    return None


def coerce_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def coerce_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def coerce_position(value: Any) -> Optional[Position]:
    if isinstance(value, str) and value.strip().upper() in POSITION_ID_MAP:
        return Position(POSITION_ID_MAP[value.strip().upper()])
    number = coerce_int(value)
    if number in (1, 2, 3, 4):
        return Position(number)
    return None


def first_of(obj: Dict, aliases: Sequence[str], coerce: Callable[[Any], Any]) -> Any:
    """First alias present in obj whose value survives coercion."""
    for key in aliases:
        if key in obj:
            value = coerce(obj[key])
            if value is not None:
                return value
    return None


# ============ CONTAINER PROBING ============

def has_any_key(keys: Sequence[str]) -> Callable[[Any], bool]:
    """Predicate: item is a dict exposing at least one of keys."""
    keys = tuple(keys)

    def predicate(item: Any) -> bool:
        return isinstance(item, dict) and any(k in item for k in keys)

    return predicate


@dataclass
class ShapeSearch:
    """
    Breadth-first walk through a payload for a list of record-like dicts.

    This is a heuristic for upstream shapes nobody has seen yet, not a
    contract: it returns the first non-empty list, up to max_depth levels
    down, whose every element satisfies predicate. It can pick the wrong
    list if something else in the payload looks similar.
    """
    predicate: Callable[[Any], bool]
    max_depth: int = 4
    enabled: bool = True

    def matches(self, value: Any) -> bool:
        return isinstance(value, list) and len(value) > 0 and all(self.predicate(v) for v in value)

    def find(self, raw: Any) -> Optional[List]:
        if not self.enabled:
            return None
        queue = deque([(raw, 0)])
        while queue:
            node, depth = queue.popleft()
            if self.matches(node):
                return node
            if depth >= self.max_depth:
                continue
            if isinstance(node, dict):
                children = list(node.values())
            elif isinstance(node, list):
                children = node
            else:
                continue
            for child in children:
                if isinstance(child, (dict, list)):
                    queue.append((child, depth + 1))
        return None


def default_search(signal_keys: Sequence[str], config: Optional[NormalizerConfig] = None) -> ShapeSearch:
    cfg = config or APP_CONFIG["normalizer"]
    return ShapeSearch(
        predicate=has_any_key(signal_keys),
        max_depth=cfg.deep_search_max_depth,
        enabled=cfg.deep_search_enabled,
    )


def _resolve_path(raw: Any, path: ContainerPath) -> Any:
    keys = (path,) if isinstance(path, str) else path
    node = raw
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _path_label(path: ContainerPath) -> str:
    return path if isinstance(path, str) else ".".join(path)


def find_container(
    raw: Any,
    containers: Sequence[ContainerPath],
    search: Optional[ShapeSearch] = None,
) -> Tuple[Optional[List], Optional[str]]:
    """
    Locate the list of candidate records inside raw.

    Returns (items, label) where label names the container that matched,
    or (None, None) when nothing did. A known container that is present
    but empty wins over the deep search.
    """
    if isinstance(raw, list) and raw:
        return raw, ROOT_CONTAINER

    for path in containers:
        candidate = _resolve_path(raw, path)
        if isinstance(candidate, list) and candidate:
            return candidate, _path_label(path)

    if search is not None and not _has_empty_container(raw, containers):
        found = search.find(raw)
        if found is not None:
            logger.info(f"Deep search matched a {len(found)}-element list; no known container present")
            return found, DEEP_SEARCH_CONTAINER

    return None, None


def _has_empty_container(raw: Any, containers: Sequence[ContainerPath]) -> bool:
    """True when raw is, or holds at a known path, a genuinely empty list."""
    if isinstance(raw, list):
        return not raw
    return any(_resolve_path(raw, path) == [] for path in containers)


# ============ RESULTS ============

@dataclass
class NormalizeResult:
    """Records that survived, how many were dropped, and where they came from."""
    records: List = field(default_factory=list)
    dropped: int = 0
    container: Optional[str] = None
    legitimately_empty: bool = False

    def __len__(self) -> int:
        return len(self.records)


def ensure_usable(result: NormalizeResult, resource: str, allow_empty: bool = True) -> List:
    """
    Return the records or raise NoUsableData.

    An empty result is only acceptable when upstream really sent an empty
    list (and allow_empty is set); an empty result because nothing could be
    found or everything was dropped is a failure.
    """
    if result.records:
        return result.records
    if allow_empty and result.legitimately_empty:
        return result.records
    if result.dropped:
        message = f"Could not normalize any of {result.dropped} elements"
    else:
        message = "No usable records in upstream payload"
    raise NoUsableData(resource, message)


def _normalize_each(
    raw: Any,
    containers: Sequence[ContainerPath],
    search: Optional[ShapeSearch],
    mapper: Callable[[Dict], Any],
    resource: str,
    drop_invalid: bool,
) -> NormalizeResult:
    items, container = find_container(raw, containers, search)
    if items is None:
        return NormalizeResult(legitimately_empty=_has_empty_container(raw, containers))

    records = []
    dropped = 0
    for item in items:
        record = mapper(item) if isinstance(item, dict) else None
        if record is None:
            if not drop_invalid:
                raise MalformedResponse(resource, f"Unusable element in '{container}': {str(item)[:200]}")
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.debug(f"{resource}: dropped {dropped} of {len(items)} elements from '{container}'")
    return NormalizeResult(records=records, dropped=dropped, container=container)


# ============ SQUADS ============

def map_pick(raw: Dict, position_aliases: Sequence[str] = PICK_POSITION_ALIASES) -> Optional[PartialPick]:
    """Read a pick from the payload alone. Only the player id is required."""
    player_id = first_of(raw, PICK_ID_ALIASES, coerce_int)
    if player_id is None:
        return None
    return PartialPick(
        id=player_id,
        web_name=first_of(raw, PICK_NAME_ALIASES, coerce_str),
        position=first_of(raw, position_aliases, coerce_position),
        team=first_of(raw, PICK_TEAM_ALIASES, coerce_int),
        gw_points=first_of(raw, PICK_POINTS_ALIASES, coerce_int),
        is_captain=bool(first_of(raw, PICK_CAPTAIN_ALIASES, coerce_bool)),
        is_vice_captain=bool(first_of(raw, PICK_VICE_ALIASES, coerce_bool)),
        multiplier=first_of(raw, PICK_MULTIPLIER_ALIASES, coerce_int),
    )


def normalize_squad(
    raw: Any,
    catalog: ReferenceCatalog,
    position_aliases: Sequence[str] = PICK_POSITION_ALIASES,
    search: Optional[ShapeSearch] = None,
    drop_invalid: bool = True,
) -> NormalizeResult:
    """
    Picks from any known squad shape, enriched from the catalog.

    A pick whose position resolves from neither the payload nor the catalog
    is dropped. Pass a disabled ShapeSearch to turn off the deep search.
    """
    search = search or default_search(PICK_SIGNAL_KEYS)

    def mapper(item: Dict) -> Optional[Pick]:
        return enrich_pick(map_pick(item, position_aliases), catalog)

    return _normalize_each(raw, SQUAD_CONTAINERS, search, mapper, "squad", drop_invalid)


def _full_name(obj: Dict) -> Optional[str]:
    first = coerce_str(obj.get("player_first_name"))
    last = coerce_str(obj.get("player_last_name"))
    name = " ".join(part for part in (first, last) if part)
    return name or None


def normalize_squad_meta(raw: Any, default_gw: int = 0) -> SquadMeta:
    obj = raw if isinstance(raw, dict) else {}
    return SquadMeta(
        entry_id=first_of(obj, META_ENTRY_ALIASES, coerce_int) or 0,
        team_name=first_of(obj, META_TEAM_ALIASES, coerce_str) or DEFAULT_TEAM_NAME,
        manager_name=first_of(obj, META_MANAGER_ALIASES, coerce_str) or _full_name(obj) or DEFAULT_MANAGER_NAME,
        gw=first_of(obj, META_GW_ALIASES, coerce_int) or default_gw,
    )


# ============ STANDINGS ============

def _positive(value: Optional[int]) -> Optional[int]:
    return value if value is not None and value > 0 else None


def map_standing(raw: Dict) -> Optional[StandingRow]:
    entry = first_of(raw, STANDING_ENTRY_ALIASES, coerce_int)
    if entry is None:
        return None
    total = first_of(raw, STANDING_TOTAL_ALIASES, coerce_int)
    if total is None:
        total = 0
    if total < 0:
        return None
    return StandingRow(
        entry=entry,
        entry_name=first_of(raw, STANDING_TEAM_ALIASES, coerce_str) or DEFAULT_TEAM_NAME,
        player_name=first_of(raw, STANDING_MANAGER_ALIASES, coerce_str) or DEFAULT_MANAGER_NAME,
        total=total,
        event_total=first_of(raw, STANDING_EVENT_TOTAL_ALIASES, coerce_int),
        rank=_positive(coerce_int(raw.get("rank"))),
        last_rank=_positive(coerce_int(raw.get("last_rank"))),
    )


def normalize_standings(raw: Any, search: Optional[ShapeSearch] = None, drop_invalid: bool = True) -> NormalizeResult:
    search = search or default_search(STANDING_SIGNAL_KEYS)
    return _normalize_each(raw, STANDINGS_CONTAINERS, search, map_standing, "standings", drop_invalid)


# ============ FIXTURES ============

def _map_stat_entries(raw: Any) -> List[StatEntry]:
    if not isinstance(raw, list):
        return []
    entries = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        element = first_of(item, ("element", "player_id", "id"), coerce_int)
        value = coerce_int(item.get("value"))
        if element is None or value is None:
            continue
        entries.append(StatEntry(element=element, value=value))
    return entries


def _map_stats(raw: Any) -> List[FixtureStat]:
    if not isinstance(raw, list):
        return []
    stats = []
    for block in raw:
        if not isinstance(block, dict):
            continue
        identifier = coerce_str(block.get("identifier"))
        if identifier is None:
            continue
        stats.append(FixtureStat(
            identifier=identifier,
            h=_map_stat_entries(block.get("h")),
            a=_map_stat_entries(block.get("a")),
        ))
    return stats


def map_fixture(raw: Dict) -> Optional[Fixture]:
    fixture_id = first_of(raw, FIXTURE_ID_ALIASES, coerce_int)
    team_h = first_of(raw, FIXTURE_HOME_ALIASES, coerce_int)
    team_a = first_of(raw, FIXTURE_AWAY_ALIASES, coerce_int)
    if fixture_id is None or team_h is None or team_a is None:
        return None
    return Fixture(
        id=fixture_id,
        event=coerce_int(raw.get("event")),
        kickoff_time=first_of(raw, FIXTURE_KICKOFF_ALIASES, coerce_str),
        started=bool(coerce_bool(raw.get("started"))),
        finished=bool(coerce_bool(raw.get("finished"))),
        finished_provisional=bool(coerce_bool(raw.get("finished_provisional"))),
        team_h=team_h,
        team_a=team_a,
        team_h_score=first_of(raw, FIXTURE_HOME_SCORE_ALIASES, coerce_int),
        team_a_score=first_of(raw, FIXTURE_AWAY_SCORE_ALIASES, coerce_int),
        team_h_difficulty=coerce_int(raw.get("team_h_difficulty")),
        team_a_difficulty=coerce_int(raw.get("team_a_difficulty")),
        stats=_map_stats(raw.get("stats")),
    )


def normalize_fixtures(raw: Any, search: Optional[ShapeSearch] = None, drop_invalid: bool = True) -> NormalizeResult:
    search = search or default_search(FIXTURE_SIGNAL_KEYS)
    return _normalize_each(raw, FIXTURE_CONTAINERS, search, map_fixture, "fixtures", drop_invalid)


# ============ LIVE POINTS ============

def parse_live_points(raw: Any) -> Dict[int, int]:
    """
    player id -> raw total points for the gameweek.

    Current shape: {"elements": [{"id": 1, "stats": {"total_points": 6}}]}.
    Older seasons keyed elements by id: {"elements": {"1": {"stats": {...}}}}.
    """
    elements = raw.get("elements") if isinstance(raw, dict) else raw
    if isinstance(elements, dict):
        items = [(coerce_int(k), v) for k, v in elements.items()]
    elif isinstance(elements, list):
        items = [
            (first_of(e, ("id", "element"), coerce_int) if isinstance(e, dict) else None, e)
            for e in elements
        ]
    else:
        raise MalformedResponse("live points", "No elements in live payload")

    points: Dict[int, int] = {}
    for player_id, entry in items:
        if player_id is None or not isinstance(entry, dict):
            continue
        stats = entry.get("stats")
        if not isinstance(stats, dict):
            stats = entry
        total = coerce_int(stats.get("total_points"))
        if total is not None:
            points[player_id] = total
    return points


# ============ REFERENCE CATALOG ============

def _parse_event(raw: Dict) -> Optional[Event]:
    event_id = coerce_int(raw.get("id"))
    if event_id is None:
        return None
    return Event(
        id=event_id,
        is_current=bool(coerce_bool(raw.get("is_current"))),
        finished=bool(coerce_bool(raw.get("finished"))),
        is_next=bool(coerce_bool(raw.get("is_next"))),
        deadline_time=coerce_str(raw.get("deadline_time")),
    )


def _parse_team(raw: Dict) -> Optional[Team]:
    team_id = coerce_int(raw.get("id"))
    if team_id is None:
        return None
    name = coerce_str(raw.get("name")) or team_placeholder(team_id)
    return Team(
        id=team_id,
        name=name,
        short_name=coerce_str(raw.get("short_name")) or name,
        code=coerce_int(raw.get("code")),
    )


def _parse_element(raw: Dict) -> Optional[Element]:
    player_id = coerce_int(raw.get("id"))
    position = coerce_position(raw.get("element_type"))
    if player_id is None or position is None:
        return None
    return Element(
        id=player_id,
        web_name=coerce_str(raw.get("web_name")) or player_placeholder(player_id),
        team=coerce_int(raw.get("team")) or 0,
        element_type=position,
    )


def _parse_list(raw: Any, parser: Callable[[Dict], Any]) -> List:
    if not isinstance(raw, list):
        return []
    parsed = (parser(item) for item in raw if isinstance(item, dict))
    return [item for item in parsed if item is not None]


def parse_reference_catalog(raw: Any) -> ReferenceCatalog:
    """Build the request-scoped catalog from a bootstrap-static document."""
    if not isinstance(raw, dict):
        raise MalformedResponse("reference catalog", f"Expected an object, got {type(raw).__name__}")
    if not any(isinstance(raw.get(key), list) for key in ("events", "teams", "elements")):
        raise MalformedResponse("reference catalog", "No events, teams or elements in payload")

    events = _parse_list(raw.get("events"), _parse_event)
    teams = _parse_list(raw.get("teams"), _parse_team)
    players = _parse_list(raw.get("elements"), _parse_element)

    return ReferenceCatalog(
        events=tuple(events),
        teams={t.id: t for t in teams},
        players={p.id: p for p in players},
    )
