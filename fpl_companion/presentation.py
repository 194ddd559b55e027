"""
FPL Companion - Presentation Module

Display ordering and labels for the pages: fixture ordering
(upcoming -> live -> finished), status/score pills, squad grouping by
position and the per-fixture bonus tables.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Iterable, Sequence

from fpl_companion.calculators import bonus_leaderboard, build_bonus_tally
from fpl_companion.constants import BONUS_STAT, NO_BONUS_DATA_MESSAGE, POSITION_MAP, crest_url
from fpl_companion.models import BonusRow, Fixture, Pick, ReferenceCatalog


# ============ FIXTURE ORDERING ============

def fixture_stage(fixture: Fixture) -> int:
    """0 = not started, 1 = live, 2 = finished."""
    if fixture.finished:
        return 2
    if fixture.started:
        return 1
    return 0


def kickoff_epoch(kickoff_time: Optional[str]) -> float:
    """Kickoff as a UTC timestamp; missing or unparseable counts as 0."""
    if not kickoff_time:
        return 0.0
    try:
        dt = datetime.fromisoformat(kickoff_time.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def sort_fixtures(fixtures: Iterable[Fixture]) -> List[Fixture]:
    return sorted(fixtures, key=lambda f: (fixture_stage(f), kickoff_epoch(f.kickoff_time)))


# ============ LABELS ============

def format_kickoff(kickoff_time: Optional[str]) -> str:
    if not kickoff_time or not kickoff_epoch(kickoff_time):
        return ""
    dt = datetime.fromtimestamp(kickoff_epoch(kickoff_time), tz=timezone.utc)
    return dt.strftime("%a %H:%M")


def fixture_status(fixture: Fixture) -> str:
    if fixture.finished:
        return "FT"
    if fixture.started:
        return "LIVE"
    return format_kickoff(fixture.kickoff_time)


def score_label(fixture: Fixture) -> str:
    if fixture.team_h_score is not None and fixture.team_a_score is not None:
        return f"{fixture.team_h_score}–{fixture.team_a_score}"
    return "vs"


# ============ SQUAD ============

def group_picks_by_position(picks: Sequence[Pick]) -> Dict[str, List[Pick]]:
    """GKP/DEF/MID/FWD buckets, each sorted by points with unscored picks last."""
    grouped: Dict[str, List[Pick]] = {label: [] for label in POSITION_MAP.values()}
    for pick in picks:
        grouped[pick.position.label].append(pick)
    for label, bucket in grouped.items():
        grouped[label] = sorted(
            bucket,
            key=lambda p: p.gw_points if p.gw_points is not None else -1,
            reverse=True,
        )
    return grouped


# ============ BONUS ============

def bonus_rows(fixture: Fixture, side: str, catalog: ReferenceCatalog) -> List[BonusRow]:
    """Bonus entries for one side ("h" or "a") of a fixture, with names."""
    rows = []
    for stat in fixture.stats:
        if stat.identifier != BONUS_STAT:
            continue
        for entry in getattr(stat, side):
            rows.append(BonusRow(
                player_id=entry.element,
                web_name=catalog.player_name(entry.element),
                value=entry.value,
            ))
    return rows


def _team_crest(catalog: ReferenceCatalog, team_id: int) -> Optional[str]:
    team = catalog.teams.get(team_id)
    return crest_url(team.code) if team else None


def fixture_card(fixture: Fixture, catalog: ReferenceCatalog) -> Dict:
    return {
        "id": fixture.id,
        "event": fixture.event,
        "kickoff_time": fixture.kickoff_time,
        "home": {
            "id": fixture.team_h,
            "name": catalog.team_name(fixture.team_h),
            "crest": _team_crest(catalog, fixture.team_h),
        },
        "away": {
            "id": fixture.team_a,
            "name": catalog.team_name(fixture.team_a),
            "crest": _team_crest(catalog, fixture.team_a),
        },
        "score": score_label(fixture),
        "status": fixture_status(fixture),
        "home_bonus": [r.model_dump() for r in bonus_rows(fixture, "h", catalog)],
        "away_bonus": [r.model_dump() for r in bonus_rows(fixture, "a", catalog)],
    }


def build_bonus_view(gw: int, fixtures: Sequence[Fixture], catalog: ReferenceCatalog) -> Dict:
    """Everything the bonus page shows for one gameweek."""
    cards = [fixture_card(f, catalog) for f in sort_fixtures(fixtures)]
    leaders = bonus_leaderboard(build_bonus_tally(fixtures), catalog)
    return {
        "gw": gw,
        "fixtures": cards,
        "leaderboard": [leader.model_dump() for leader in leaders],
        "message": None if cards else NO_BONUS_DATA_MESSAGE,
    }
