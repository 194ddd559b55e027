"""
FPL Companion - Constants Module

Upstream URLs and headers, position lookups, the field alias tables the
normalizer probes, and placeholder labels.
"""

from typing import Optional


# =============================================================================
# UPSTREAM
# =============================================================================

FPL_BASE_URL = "https://fantasy.premierleague.com/api"
FPL_REFERER = "https://fantasy.premierleague.com/"

# FPL often 403s without a browser UA
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.4 Safari/605.1.15"
    ),
    "Accept": "application/json,text/plain,*/*",
    "Referer": FPL_REFERER,
}

BACKEND_HEADERS = {
    "User-Agent": "FPL-Companion/1.0",
    "Accept": "application/json,text/plain,*/*",
}

CREST_URL_TEMPLATE = "https://resources.premierleague.com/premierleague/badges/t{code}.png"


# =============================================================================
# POSITIONS
# =============================================================================

POSITION_MAP = {1: "GKP", 2: "DEF", 3: "MID", 4: "FWD"}
POSITION_ID_MAP = {"GKP": 1, "GK": 1, "DEF": 2, "MID": 3, "FWD": 4}
POSITION_LABELS = {1: "Goalkeepers", 2: "Defenders", 3: "Midfielders", 4: "Forwards"}

CAPTAIN_MULTIPLIER = 2
BONUS_STAT = "bonus"


# =============================================================================
# PLACEHOLDERS
# =============================================================================

DEFAULT_TEAM_NAME = "Team"
DEFAULT_MANAGER_NAME = "Manager"

NO_LEAGUE_DATA_MESSAGE = "Uh oh, you've gotten ahead of yourself — no league data yet."
NO_BONUS_DATA_MESSAGE = "No bonus data available yet."
NO_SNAPSHOT_MESSAGE = (
    "No snapshots found yet. Once a Gameweek ends and you autosnapshot, they'll appear here."
)
TIMED_OUT_MESSAGE = "Request timed out"


def player_placeholder(player_id) -> str:
    return f"Player {player_id}"


def team_placeholder(team_id) -> str:
    return f"Team {team_id}"


def crest_url(code: Optional[int]) -> Optional[str]:
    """Badge image for a team's stable asset code (not its id)."""
    if code is None:
        return None
    return CREST_URL_TEMPLATE.format(code=code)


# =============================================================================
# CONTAINERS - where each resource has historically lived in a payload
# Paths are probed in order; tuples are nested keys.
# =============================================================================

SQUAD_CONTAINERS = ("picks", "squad", "results", "players", "data", ("team", "picks"))
STANDINGS_CONTAINERS = ("standings", ("standings", "results"), "results", "data")
FIXTURE_CONTAINERS = ("fixtures", "results", "data")

# Keys whose presence makes a dict "look like" a record, for the deep search
PICK_SIGNAL_KEYS = ("element", "id", "player_id", "code")
STANDING_SIGNAL_KEYS = ("entry", "entry_name", "player_name")
FIXTURE_SIGNAL_KEYS = ("team_h", "team_a", "kickoff_time")


# =============================================================================
# FIELD ALIASES - first present and coercible wins
# =============================================================================

PICK_ID_ALIASES = ("id", "element", "player_id", "code")
PICK_POSITION_ALIASES = ("position", "element_type", "pos")
# FPL's own picks payload uses "position" for the squad slot (1-15)
FPL_PICK_POSITION_ALIASES = ("element_type",)
PICK_TEAM_ALIASES = ("team", "team_id", "team_code")
PICK_NAME_ALIASES = ("web_name", "name", "player_name")
PICK_POINTS_ALIASES = ("gw_points", "event_points", "points")
PICK_CAPTAIN_ALIASES = ("is_captain", "captain")
PICK_VICE_ALIASES = ("is_vice_captain", "vice_captain")
PICK_MULTIPLIER_ALIASES = ("multiplier",)

STANDING_ENTRY_ALIASES = ("entry", "entry_id", "id")
STANDING_TEAM_ALIASES = ("entry_name", "team_name")
STANDING_MANAGER_ALIASES = ("player_name", "manager_name")
STANDING_TOTAL_ALIASES = ("total", "total_points")
STANDING_EVENT_TOTAL_ALIASES = ("event_total", "gw_points")

FIXTURE_ID_ALIASES = ("id", "fixture_id")
FIXTURE_HOME_ALIASES = ("team_h", "home_team")
FIXTURE_AWAY_ALIASES = ("team_a", "away_team")
FIXTURE_HOME_SCORE_ALIASES = ("team_h_score", "home_score")
FIXTURE_AWAY_SCORE_ALIASES = ("team_a_score", "away_score")
FIXTURE_KICKOFF_ALIASES = ("kickoff_time", "kickoff")

META_ENTRY_ALIASES = ("entry_id", "entry", "id")
META_TEAM_ALIASES = ("team_name", "entry_name", "name")
META_MANAGER_ALIASES = ("manager_name", "player_name")
META_GW_ALIASES = ("gw", "event", "current_event")
