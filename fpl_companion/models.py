from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Optional, List, Dict, Mapping, Tuple, Union

from pydantic import BaseModel

from fpl_companion.constants import POSITION_MAP, player_placeholder, team_placeholder


# ============ ENUMS ============

class Position(IntEnum):
    GKP = 1
    DEF = 2
    MID = 3
    FWD = 4

    @property
    def label(self) -> str:
        return POSITION_MAP[self.value]


# =============================================================================
# REFERENCE CATALOG (bootstrap-static) - request scoped, never mutated
# =============================================================================

@dataclass(frozen=True)
class Event:
    """One gameweek."""
    id: int
    is_current: bool = False
    finished: bool = False
    is_next: bool = False
    deadline_time: Optional[str] = None


@dataclass(frozen=True)
class Team:
    id: int
    name: str
    short_name: str
    code: Optional[int] = None  # badge asset code, presentation only


@dataclass(frozen=True)
class Element:
    """A player as the catalog knows them."""
    id: int
    web_name: str
    team: int
    element_type: Position


def _frozen(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ReferenceCatalog:
    """
    Snapshot of all gameweeks, teams and players at one point in time.

    Built once per request and passed explicitly to the normalizer and
    enricher. The id maps are read-only views.
    """
    events: Tuple[Event, ...] = ()
    teams: Mapping[int, Team] = field(default_factory=dict)
    players: Mapping[int, Element] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "events", tuple(self.events))
        object.__setattr__(self, "teams", _frozen(self.teams))
        object.__setattr__(self, "players", _frozen(self.players))

    def player_name(self, player_id: int) -> str:
        player = self.players.get(player_id)
        return player.web_name if player else player_placeholder(player_id)

    def team_name(self, team_id: int) -> str:
        team = self.teams.get(team_id)
        if not team:
            return team_placeholder(team_id)
        return team.short_name or team.name

    def to_dict(self) -> Dict:
        return {
            "events": [
                {
                    "id": e.id,
                    "is_current": e.is_current,
                    "finished": e.finished,
                    "is_next": e.is_next,
                    "deadline_time": e.deadline_time,
                }
                for e in self.events
            ],
            "teams": [
                {"id": t.id, "name": t.name, "short_name": t.short_name, "code": t.code}
                for t in self.teams.values()
            ],
            "elements": [
                {"id": p.id, "web_name": p.web_name, "team": p.team, "element_type": int(p.element_type)}
                for p in self.players.values()
            ],
        }


@dataclass
class PartialPick:
    """A pick as read from the payload, before catalog backfill."""
    id: int
    web_name: Optional[str] = None
    position: Optional[Position] = None
    team: Optional[int] = None
    gw_points: Optional[int] = None
    is_captain: bool = False
    is_vice_captain: bool = False
    multiplier: Optional[int] = None


# ============ CANONICAL RECORDS ============
# These provide contract stability between the normalizer and the frontend

class StandingRow(BaseModel):
    """One team's line in a classic league table."""
    entry: int
    entry_name: str
    player_name: str
    total: int
    event_total: Optional[int] = None
    rank: Optional[int] = None
    last_rank: Optional[int] = None


class Pick(BaseModel):
    """One squad slot for a manager in a gameweek."""
    id: int
    web_name: str
    position: Position
    team: Optional[int] = None
    gw_points: Optional[int] = None
    is_captain: bool = False
    is_vice_captain: bool = False
    multiplier: Optional[int] = None


class StatEntry(BaseModel):
    element: int
    value: int


class FixtureStat(BaseModel):
    identifier: str
    h: List[StatEntry] = []
    a: List[StatEntry] = []


class Fixture(BaseModel):
    id: int
    event: Optional[int] = None
    kickoff_time: Optional[str] = None
    started: bool = False
    finished: bool = False
    finished_provisional: bool = False
    team_h: int
    team_a: int
    team_h_score: Optional[int] = None
    team_a_score: Optional[int] = None
    team_h_difficulty: Optional[int] = None
    team_a_difficulty: Optional[int] = None
    stats: List[FixtureStat] = []


# ============ RESPONSE SCHEMAS ============

class LeaguePayload(BaseModel):
    standings: List[StandingRow]


class SquadMeta(BaseModel):
    entry_id: int = 0
    team_name: str
    manager_name: str
    gw: int = 0


class TeamPayload(BaseModel):
    entry_id: int
    team_name: str
    manager_name: str
    gw: int
    picks: List[Pick]


class BonusLeader(BaseModel):
    player_id: int
    web_name: str
    team: Optional[int] = None
    total_bonus: int


class BonusRow(BaseModel):
    """One player's bonus on one side of a fixture."""
    player_id: int
    web_name: str
    value: int


class TenurePayload(BaseModel):
    entry_id: int
    seasons_played: int
    first_season: Optional[str] = None
    playing_since_year: Optional[int] = None
    seasons: List[str]


# Raw upstream JSON, before normalization
JSONValue = Union[Dict, List, str, int, float, bool, None]
