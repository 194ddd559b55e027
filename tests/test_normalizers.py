"""Tests for payload normalization: containers, aliases, drop policy, deep search."""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import (
    normalize_squad,
    normalize_squad_meta,
    normalize_standings,
    normalize_fixtures,
    parse_live_points,
    parse_reference_catalog,
    find_container,
    ensure_usable,
    has_any_key,
    coerce_int,
    coerce_position,
    resolve_current_gameweek,
    ShapeSearch,
    Position,
    Pick,
    MalformedResponse,
    NoUsableData,
    FPL_PICK_POSITION_ALIASES,
    SQUAD_CONTAINERS,
)

import pytest


# =============================================================================
# Coercion
# =============================================================================

class TestCoercion:
    def test_int_from_numeric_string(self):
        assert coerce_int("42") == 42
        assert coerce_int(" 7 ") == 7
        assert coerce_int("3.0") == 3

    def test_int_rejects_junk(self):
        assert coerce_int(None) is None
        assert coerce_int("") is None
        assert coerce_int("abc") is None
        assert coerce_int(2.5) is None
        assert coerce_int(float("nan")) is None

    def test_bool_is_not_a_number(self):
        assert coerce_int(True) is None

    def test_position_from_code_or_label(self):
        assert coerce_position(3) == Position.MID
        assert coerce_position("FWD") == Position.FWD
        assert coerce_position("gk") == Position.GKP
        assert coerce_position(5) is None
        assert coerce_position(0) is None


# =============================================================================
# Squads
# =============================================================================

class TestNormalizeSquad:
    def test_results_container_enriched_from_catalog(self, make_catalog):
        """{results: [{element: 7, is_captain: true}]} -> one fully resolved pick."""
        catalog = make_catalog()
        result = normalize_squad({"results": [{"element": 7, "is_captain": True}]}, catalog)

        assert len(result.records) == 1
        pick = result.records[0]
        assert pick.id == 7
        assert pick.web_name == "Tester"
        assert pick.position == Position.MID
        assert pick.team == 3
        assert pick.is_captain is True
        assert result.container == "results"

    def test_unresolvable_position_is_dropped(self, make_catalog):
        catalog = make_catalog()
        raw = {"picks": [{"element": 7}, {"element": 8}, {"element": 555}]}
        result = normalize_squad(raw, catalog)

        assert len(result.records) == 2
        assert result.dropped == 1
        assert [p.id for p in result.records] == [7, 8]

    def test_unknown_player_kept_if_payload_has_position(self, make_catalog):
        catalog = make_catalog()
        result = normalize_squad({"squad": [{"player_id": 555, "pos": 4}]}, catalog)

        assert len(result.records) == 1
        pick = result.records[0]
        assert pick.position == Position.FWD
        assert pick.web_name == "Player 555"
        assert pick.team is None

    def test_payload_values_win_over_catalog(self, make_catalog):
        catalog = make_catalog()
        raw = [{"id": 7, "name": "Override", "element_type": 4, "team_id": 9, "event_points": 3}]
        pick = normalize_squad(raw, catalog).records[0]

        assert pick.web_name == "Override"
        assert pick.position == Position.FWD
        assert pick.team == 9
        assert pick.gw_points == 3

    def test_container_probe_order(self, make_catalog):
        """picks is probed before squad."""
        catalog = make_catalog()
        raw = {"squad": [{"element": 8}], "picks": [{"element": 7}]}
        result = normalize_squad(raw, catalog)
        assert [p.id for p in result.records] == [7]
        assert result.container == "picks"

    def test_empty_container_skipped(self, make_catalog):
        catalog = make_catalog()
        raw = {"picks": [], "players": [{"element": 8}]}
        result = normalize_squad(raw, catalog)
        assert [p.id for p in result.records] == [8]

    def test_nested_team_picks(self, make_catalog):
        catalog = make_catalog()
        result = normalize_squad({"team": {"picks": [{"code": 8}]}}, catalog)
        assert result.container == "team.picks"
        assert result.records[0].position == Position.DEF

    def test_canonical_picks_are_a_no_op(self, make_catalog):
        catalog = make_catalog()
        picks = [
            Pick(id=7, web_name="Tester", position=Position.MID, team=3, gw_points=12,
                 is_captain=True, multiplier=2),
            Pick(id=8, web_name="Backline", position=Position.DEF, team=4),
        ]
        raw = [p.model_dump() for p in picks]
        result = normalize_squad(raw, catalog)

        assert result.records == picks
        assert result.dropped == 0

    def test_fpl_slot_is_not_read_as_position(self, make_catalog):
        """FPL picks use 'position' for the squad slot; 555 has no real position."""
        catalog = make_catalog()
        raw = {"picks": [
            {"element": 7, "position": 1, "multiplier": 2, "is_captain": True},
            {"element": 555, "position": 2, "multiplier": 1},
        ]}
        result = normalize_squad(raw, catalog, position_aliases=FPL_PICK_POSITION_ALIASES)

        assert [p.id for p in result.records] == [7]
        assert result.records[0].position == Position.MID
        assert result.records[0].multiplier == 2

    def test_strict_mode_raises(self, make_catalog):
        catalog = make_catalog()
        with pytest.raises(MalformedResponse):
            normalize_squad({"picks": [{"element": 555}]}, catalog, drop_invalid=False)

    def test_no_container_is_empty_result(self, make_catalog):
        catalog = make_catalog()
        result = normalize_squad({"message": "nothing here"}, catalog)
        assert result.records == []
        assert result.container is None
        assert result.legitimately_empty is False


# =============================================================================
# Deep search
# =============================================================================

class TestShapeSearch:
    def test_finds_nested_list(self, make_catalog):
        catalog = make_catalog()
        raw = {"payload": {"lineup": {"members": [{"element": 7}, {"element": 8}]}}}
        result = normalize_squad(raw, catalog)

        assert [p.id for p in result.records] == [7, 8]
        assert result.container == "<deep-search>"

    def test_disabled_search_finds_nothing(self, make_catalog):
        catalog = make_catalog()
        raw = {"payload": {"lineup": {"members": [{"element": 7}]}}}
        off = ShapeSearch(predicate=has_any_key(["element"]), enabled=False)
        result = normalize_squad(raw, catalog, search=off)
        assert result.records == []

    def test_depth_limit(self):
        search = ShapeSearch(predicate=has_any_key(["element"]), max_depth=2)
        deep = {"a": {"b": {"c": {"d": [{"element": 1}]}}}}
        shallow = {"a": {"b": [{"element": 1}]}}
        assert search.find(deep) is None
        assert search.find(shallow) == [{"element": 1}]

    def test_every_element_must_match(self):
        search = ShapeSearch(predicate=has_any_key(["element"]))
        raw = {"mixed": [{"element": 1}, {"other": 2}], "good": {"list": [{"element": 3}]}}
        assert search.find(raw) == [{"element": 3}]

    def test_custom_predicate(self):
        search = ShapeSearch(predicate=lambda item: isinstance(item, dict) and item.get("kind") == "pick")
        items, label = find_container({"x": [{"kind": "pick"}]}, SQUAD_CONTAINERS, search)
        assert items == [{"kind": "pick"}]
        assert label == "<deep-search>"


# =============================================================================
# Squad meta
# =============================================================================

class TestSquadMeta:
    def test_backend_aliases(self):
        meta = normalize_squad_meta({"entry": 12, "entry_name": "Lobsters", "player_name": "Sam", "event": 5})
        assert (meta.entry_id, meta.team_name, meta.manager_name, meta.gw) == (12, "Lobsters", "Sam", 5)

    def test_fpl_entry_profile(self):
        profile = {"id": 99, "name": "Lobsters", "player_first_name": "Sam", "player_last_name": "Lee",
                   "current_event": 4}
        meta = normalize_squad_meta(profile)
        assert meta.team_name == "Lobsters"
        assert meta.manager_name == "Sam Lee"
        assert meta.gw == 4

    def test_defaults(self):
        meta = normalize_squad_meta([], default_gw=3)
        assert (meta.entry_id, meta.team_name, meta.manager_name, meta.gw) == (0, "Team", "Manager", 3)


# =============================================================================
# Standings
# =============================================================================

class TestNormalizeStandings:
    def test_fpl_classic_shape(self):
        raw = {"standings": {"results": [
            {"id": 501, "entry": 11, "entry_name": "Lobsters", "player_name": "Sam",
             "total": 120, "event_total": 55, "rank": 1, "last_rank": 2},
        ]}}
        result = normalize_standings(raw)
        row = result.records[0]
        assert row.entry == 11
        assert row.rank == 1
        assert row.last_rank == 2
        assert row.event_total == 55
        assert result.container == "standings.results"

    def test_backend_array_shape(self):
        raw = {"standings": [{"entry": 11, "team_name": "Lobsters", "manager_name": "Sam", "total_points": 80}]}
        row = normalize_standings(raw).records[0]
        assert (row.entry_name, row.player_name, row.total) == ("Lobsters", "Sam", 80)
        assert row.event_total is None

    def test_defaults_and_rank_rules(self):
        row = normalize_standings([{"entry": "11", "rank": 0}]).records[0]
        assert row.entry == 11
        assert row.entry_name == "Team"
        assert row.player_name == "Manager"
        assert row.total == 0
        assert row.rank is None

    def test_rows_without_entry_or_with_negative_total_dropped(self):
        raw = [{"entry": 1, "total": 10}, {"entry_name": "ghost"}, {"entry": 3, "total": -4}]
        result = normalize_standings(raw)
        assert [r.entry for r in result.records] == [1]
        assert result.dropped == 2

    def test_order_preserved(self):
        raw = [{"entry": 3, "rank": 3}, {"entry": 1, "rank": 1}, {"entry": 2, "rank": 2}]
        assert [r.entry for r in normalize_standings(raw).records] == [3, 1, 2]

    def test_empty_league_is_legitimate(self):
        result = normalize_standings({"standings": {"results": []}})
        assert ensure_usable(result, "standings") == []

    def test_empty_league_ignores_new_entries(self):
        # Pre-season: nobody has a score yet, new joiners are listed separately
        raw = {
            "league": {"id": 1391467, "name": "Mates"},
            "new_entries": {"has_next": False, "results": [
                {"entry": 11, "entry_name": "Lobsters", "player_first_name": "Sam", "player_last_name": "Lee"},
            ]},
            "standings": {"has_next": False, "results": []},
        }
        result = normalize_standings(raw)
        assert result.legitimately_empty
        assert result.container is None
        assert ensure_usable(result, "standings") == []

    def test_empty_league_rejected_when_not_allowed(self):
        result = normalize_standings({"standings": {"results": []}})
        with pytest.raises(NoUsableData):
            ensure_usable(result, "standings", allow_empty=False)

    def test_unrecognised_payload_is_no_usable_data(self):
        result = normalize_standings({"detail": "Not found."})
        with pytest.raises(NoUsableData):
            ensure_usable(result, "standings")

    def test_all_dropped_is_no_usable_data(self):
        result = normalize_standings([{"entry_name": "ghost"}])
        with pytest.raises(NoUsableData, match="1 elements"):
            ensure_usable(result, "standings")


# =============================================================================
# Fixtures
# =============================================================================

class TestNormalizeFixtures:
    def test_fpl_fixture(self, make_fixture):
        raw = [make_fixture(stats=[
            {"identifier": "goals_scored", "h": [{"element": 7, "value": 1}], "a": []},
            {"identifier": "bonus", "h": [{"element": 7, "value": 3}], "a": [{"element": 8, "value": 1}]},
        ])]
        fixture = normalize_fixtures(raw).records[0]
        assert fixture.team_h == 3
        assert fixture.team_a == 4
        assert fixture.kickoff_time == "2025-08-16T14:00:00Z"
        bonus = [s for s in fixture.stats if s.identifier == "bonus"][0]
        assert [(e.element, e.value) for e in bonus.h] == [(7, 3)]
        assert [(e.element, e.value) for e in bonus.a] == [(8, 1)]

    def test_alternate_field_names(self):
        raw = {"fixtures": [{"fixture_id": 9, "home_team": 1, "away_team": 2,
                             "home_score": 2, "away_score": 0, "kickoff": "2025-08-16T14:00:00Z"}]}
        fixture = normalize_fixtures(raw).records[0]
        assert (fixture.id, fixture.team_h, fixture.team_a) == (9, 1, 2)
        assert (fixture.team_h_score, fixture.team_a_score) == (2, 0)
        assert fixture.stats == []

    def test_bad_stat_entries_skipped(self, make_fixture):
        raw = [make_fixture(stats=[{"identifier": "bonus", "h": [{"element": 7}, "junk", {"element": 8, "value": 2}]}])]
        bonus = normalize_fixtures(raw).records[0].stats[0]
        assert [(e.element, e.value) for e in bonus.h] == [(8, 2)]
        assert bonus.a == []

    def test_fixture_without_teams_dropped(self, make_fixture):
        raw = [make_fixture(), {"id": 2, "team_h": 1}]
        result = normalize_fixtures(raw)
        assert len(result.records) == 1
        assert result.dropped == 1

    def test_canonical_fixtures_are_a_no_op(self, make_fixture):
        fixtures = normalize_fixtures([make_fixture(
            started=True, finished=True, team_h_score=1, team_a_score=1,
            stats=[{"identifier": "bonus", "h": [{"element": 7, "value": 3}], "a": []}],
        )]).records
        again = normalize_fixtures([f.model_dump() for f in fixtures]).records
        assert again == fixtures


# =============================================================================
# Live points & reference catalog
# =============================================================================

class TestLivePoints:
    def test_current_shape(self):
        raw = {"elements": [{"id": 7, "stats": {"total_points": 6}}, {"id": 8, "stats": {"total_points": -1}}]}
        assert parse_live_points(raw) == {7: 6, 8: -1}

    def test_keyed_by_id_shape(self):
        raw = {"elements": {"7": {"stats": {"total_points": 9}}, "x": {"stats": {"total_points": 1}}}}
        assert parse_live_points(raw) == {7: 9}

    def test_missing_elements_raises(self):
        with pytest.raises(MalformedResponse):
            parse_live_points({"detail": "nope"})


class TestReferenceCatalog:
    def test_parse(self, make_bootstrap):
        catalog = parse_reference_catalog(make_bootstrap())
        assert [e.id for e in catalog.events] == [1, 2, 3]
        assert catalog.players[7].element_type == Position.MID
        assert catalog.teams[4].short_name == "BRE"

    def test_invalid_element_type_skipped(self, make_bootstrap, make_element):
        catalog = parse_reference_catalog(make_bootstrap(elements=[
            make_element(), make_element(id=9, element_type=5),
        ]))
        assert list(catalog.players) == [7]

    def test_events_keep_upstream_order(self, make_bootstrap):
        catalog = parse_reference_catalog(make_bootstrap(events=[{"id": 3}, {"id": 1}, {"id": 2}]))
        assert [e.id for e in catalog.events] == [3, 1, 2]

    def test_current_gameweek_follows_catalog_order(self, make_bootstrap):
        unfinished = parse_reference_catalog(make_bootstrap(events=[
            {"id": 5, "finished": False},
            {"id": 2, "finished": False},
        ]))
        assert resolve_current_gameweek(unfinished.events) == 5

        all_finished = parse_reference_catalog(make_bootstrap(events=[
            {"id": 9, "finished": True},
            {"id": 4, "finished": True},
        ]))
        assert resolve_current_gameweek(all_finished.events) == 9

    def test_placeholders(self, make_bootstrap):
        catalog = parse_reference_catalog(make_bootstrap())
        assert catalog.player_name(7) == "Tester"
        assert catalog.player_name(404) == "Player 404"
        assert catalog.team_name(3) == "ARS"
        assert catalog.team_name(404) == "Team 404"

    def test_read_only(self, make_bootstrap):
        catalog = parse_reference_catalog(make_bootstrap())
        with pytest.raises(TypeError):
            catalog.players[1] = None

    @pytest.mark.parametrize("raw", [[], "oops", {"detail": "Not found."}])
    def test_malformed(self, raw):
        with pytest.raises(MalformedResponse):
            parse_reference_catalog(raw)
