"""
FPL Companion - Calculators Module

Enrichment against the reference catalog, plus the arithmetic the site
needs: live points times multiplier, per-gameweek bonus tallies and
current gameweek resolution.

Everything here is pure. Missing catalog entries degrade to placeholders;
nothing in this module raises for an unknown player or team.
"""

import logging
from typing import Optional, List, Dict, Iterable, Mapping, Sequence

from fpl_companion.constants import BONUS_STAT, CAPTAIN_MULTIPLIER, player_placeholder
from fpl_companion.models import (
    BonusLeader, Event, Fixture, PartialPick, Pick, ReferenceCatalog,
)


logger = logging.getLogger("fpl_companion")


# ============ PICK ENRICHMENT ============

def enrich_pick(partial: Optional[PartialPick], catalog: ReferenceCatalog) -> Optional[Pick]:
    """
    Backfill name, team and position from the catalog.

    Payload values win over catalog values. Returns None when the position
    is unknown to both, which drops the pick.
    """
    if partial is None:
        return None

    element = catalog.players.get(partial.id)

    position = partial.position
    if position is None and element is not None:
        position = element.element_type
    if position is None:
        return None

    team = partial.team
    if team is None and element is not None:
        team = element.team

    web_name = partial.web_name
    if not web_name:
        web_name = element.web_name if element is not None else player_placeholder(partial.id)

    return Pick(
        id=partial.id,
        web_name=web_name,
        position=position,
        team=team,
        gw_points=partial.gw_points,
        is_captain=partial.is_captain,
        is_vice_captain=partial.is_vice_captain,
        multiplier=partial.multiplier,
    )


def enrich_picks(partials: Iterable[Optional[PartialPick]], catalog: ReferenceCatalog) -> List[Pick]:
    picks = []
    for partial in partials:
        pick = enrich_pick(partial, catalog)
        if pick is not None:
            picks.append(pick)
    return picks


# ============ GAMEWEEK POINTS ============

def pick_multiplier(pick: Pick) -> int:
    """Explicit multiplier if upstream sent one, otherwise captain doubles."""
    if pick.multiplier is not None:
        return pick.multiplier
    return CAPTAIN_MULTIPLIER if pick.is_captain else 1


def effective_points(player_id: int, live_points: Mapping[int, int], multiplier: int) -> int:
    return live_points.get(player_id, 0) * multiplier


def needs_live_points(picks: Sequence[Pick]) -> bool:
    return any(p.gw_points is None for p in picks)


def apply_live_points(picks: Sequence[Pick], live_points: Mapping[int, int]) -> List[Pick]:
    """Fill gw_points from live data on picks that arrived without them."""
    result = []
    for pick in picks:
        if pick.gw_points is None:
            pts = effective_points(pick.id, live_points, pick_multiplier(pick))
            pick = pick.model_copy(update={"gw_points": pts})
        result.append(pick)
    return result


# ============ BONUS ============

def build_bonus_tally(fixtures: Iterable[Fixture]) -> Dict[int, int]:
    """Sum bonus per player across every fixture's home and away lists."""
    tally: Dict[int, int] = {}
    for fixture in fixtures:
        for stat in fixture.stats:
            if stat.identifier != BONUS_STAT:
                continue
            for entry in list(stat.h) + list(stat.a):
                tally[entry.element] = tally.get(entry.element, 0) + entry.value
    return tally


def bonus_leaderboard(tally: Mapping[int, int], catalog: Optional[ReferenceCatalog] = None) -> List[BonusLeader]:
    """
    Highest total first. Ties keep the order players were first seen in the
    fixtures list; upstream defines no tie-break.
    """
    catalog = catalog or ReferenceCatalog()
    leaders = []
    for player_id, total in tally.items():
        element = catalog.players.get(player_id)
        leaders.append(BonusLeader(
            player_id=player_id,
            web_name=catalog.player_name(player_id),
            team=element.team if element else None,
            total_bonus=total,
        ))
    leaders.sort(key=lambda x: x.total_bonus, reverse=True)
    return leaders


# ============ GAMEWEEK RESOLUTION ============

def resolve_current_gameweek(events: Sequence[Event]) -> int:
    """Active event, else first unfinished, else first, else 1."""
    for event in events:
        if event.is_current:
            return event.id
    for event in events:
        if not event.finished:
            return event.id
    if events:
        return events[0].id
    return 1
