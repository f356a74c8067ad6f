from datetime import timedelta

import pytest

from conftest import SEASON_START, build_system, division_config, finish_regular_season
from league_app.core.exceptions import (
    AlreadyGeneratedError, InvalidPlayoffBracketError, PlayoffDrawNotAllowedError, RegularSeasonFrozenError,
)
from league_app.matches.models.match_model import Match, MatchStatus
from league_app.matches.services.fixture_service import FixtureService
from league_app.matches.services.match_service import MatchService
from league_app.playoffs.services.playoff_service import (
    Entrant, LegResult, PlayoffPhase, PlayoffService, PlayoffsNotReady,
    bracket_rounds, first_round_pairs, resolve_tie, round_name,
)
from league_app.standings.models.standings_model import Standing


def playoff_structure(**overrides):
    config = dict(teams_per_league=8, promote_slots=2, promote_playoff_slots=4)
    config.update(overrides)
    return [division_config(2, **config)]


def ties(matches):
    return sorted((m.playoff_tie, m.playoff_leg, m.home_team_id, m.away_team_id) for m in matches)


# Bracket arithmetic

@pytest.mark.parametrize("entrants, winners, rounds", [(2, 1, 1), (4, 1, 2), (8, 1, 3), (8, 2, 2), (4, 2, 1)])
def test_bracket_rounds(entrants, winners, rounds):
    assert bracket_rounds(entrants, winners) == rounds


@pytest.mark.parametrize("entrants, winners", [(3, 1), (6, 1), (2, 2), (12, 2), (0, 1)])
def test_bracket_rounds_rejects_uneven_fields(entrants, winners):
    with pytest.raises(InvalidPlayoffBracketError):
        bracket_rounds(entrants, winners)


def test_round_names():
    assert [round_name(n) for n in (2, 4, 8, 16, 32)] == [
        "Final", "Semifinal", "Quarterfinal", "Round of 16", "Round of 32",
    ]


def test_first_round_pairs_best_against_worst():
    entrants = [Entrant(f"T{i}", i, "L1") for i in range(1, 9)]
    pairs = [(a.seed, b.seed) for a, b in first_round_pairs(entrants)]
    assert pairs == [(1, 8), (2, 7), (3, 6), (4, 5)]


# Tie resolution

def test_single_match_decided_on_goals():
    outcome = resolve_tie([LegResult("A", "B", 2, 1)])
    assert (outcome.winner_team_id, outcome.decided_by) == ("A", "aggregate")


def test_two_legs_decided_on_away_goals():
    legs = [LegResult("B", "A", 1, 1, leg=1), LegResult("A", "B", 0, 0, leg=2)]
    outcome = resolve_tie(legs)
    assert (outcome.winner_team_id, outcome.loser_team_id, outcome.decided_by) == ("A", "B", "away-goals")


def test_shootout_decides_level_tie():
    outcome = resolve_tie([LegResult("A", "B", 1, 1, home_penalties=3, away_penalties=4)])
    assert (outcome.winner_team_id, outcome.decided_by) == ("B", "penalties")


@pytest.mark.parametrize("penalties", [(None, None), (4, 4)])
def test_level_tie_without_decisive_shootout_is_rejected(penalties):
    with pytest.raises(PlayoffDrawNotAllowedError):
        resolve_tie([LegResult("A", "B", 0, 0, *penalties)])


# Organizing

def test_promote_two_playoff_four_builds_semifinals(db, playoff_league):
    season_id = playoff_league.season.season_id
    division = playoff_league.divisions[2]
    finish_regular_season(db, season_id)

    matches = PlayoffService(db).organize_playoffs(division.division_id, season_id)

    assert ties(matches) == [(1, 1, "T3", "T6"), (2, 1, "T4", "T5")]
    assert {m.playoff_round for m in matches} == {"Semifinal"}
    assert {(m.home_seed, m.away_seed) for m in matches} == {(1, 4), (2, 3)}
    assert {m.matchday for m in matches} == {15}
    assert {m.scheduled_date for m in matches} == {SEASON_START + timedelta(days=14 * 7)}
    assert PlayoffService(db).get_playoff_phase(division.division_id, season_id) == PlayoffPhase.PLAYOFFS_IN_PROGRESS


def test_single_leg_bracket_plays_three_matches(db, playoff_league):
    season_id = playoff_league.season.season_id
    division_id = playoff_league.divisions[2].division_id
    finish_regular_season(db, season_id)
    playoffs = PlayoffService(db)
    semis = {m.home_team_id: m for m in playoffs.organize_playoffs(division_id, season_id)}

    match_service = MatchService(db)
    match_service.record_match_result(semis["T3"].match_id, 2, 1)
    assert len(playoffs.get_playoff_matches(division_id, season_id)) == 2
    match_service.record_match_result(semis["T4"].match_id, 0, 1)

    all_matches = playoffs.get_playoff_matches(division_id, season_id)
    final = [m for m in all_matches if m.playoff_round == "Final"]
    assert len(all_matches) == 3
    assert [(m.home_team_id, m.away_team_id, m.matchday) for m in final] == [("T3", "T5", 16)]

    with pytest.raises(PlayoffDrawNotAllowedError):
        match_service.record_match_result(final[0].match_id, 1, 1)
    db.refresh(final[0])
    assert final[0].status == MatchStatus.SCHEDULED.value

    match_service.record_match_result(final[0].match_id, 1, 1, home_penalties=3, away_penalties=5)

    assert playoffs.get_playoff_phase(division_id, season_id) == PlayoffPhase.PLAYOFFS_COMPLETE
    assert [w["team_id"] for w in playoffs.get_playoff_winners(division_id, season_id)] == ["T5"]


def test_two_legged_bracket_plays_six_matches(db):
    system = build_system(db, playoff_structure(two_legged_ties=True, two_legged_final=True), 8)
    season_id = system.season.season_id
    division_id = system.divisions[2].division_id
    finish_regular_season(db, season_id)
    playoffs = PlayoffService(db)

    semis = playoffs.organize_playoffs(division_id, season_id)

    # Worse seed hosts the first leg
    assert ties(semis) == [(1, 1, "T6", "T3"), (1, 2, "T3", "T6"), (2, 1, "T5", "T4"), (2, 2, "T4", "T5")]

    match_service = MatchService(db)
    legs = {(m.playoff_tie, m.playoff_leg): m for m in semis}
    match_service.record_match_result(legs[(1, 1)].match_id, 1, 1)   # T6 1-1 T3
    match_service.record_match_result(legs[(1, 2)].match_id, 0, 0)   # T3 through on away goals
    match_service.record_match_result(legs[(2, 1)].match_id, 0, 2)   # T5 0-2 T4
    match_service.record_match_result(legs[(2, 2)].match_id, 0, 1)   # T4 through 3-0

    final = [m for m in playoffs.get_playoff_matches(division_id, season_id) if m.playoff_stage == 2]
    assert ties(final) == [(1, 1, "T4", "T3"), (1, 2, "T3", "T4")]
    assert len(playoffs.get_playoff_matches(division_id, season_id)) == 6


def test_second_leg_cannot_precede_first_leg(db):
    system = build_system(db, playoff_structure(two_legged_ties=True), 8)
    season_id = system.season.season_id
    division_id = system.divisions[2].division_id
    finish_regular_season(db, season_id)
    semis = PlayoffService(db).organize_playoffs(division_id, season_id)
    second_leg = next(m for m in semis if m.playoff_tie == 1 and m.playoff_leg == 2)

    with pytest.raises(ValueError):
        MatchService(db).record_match_result(second_leg.match_id, 1, 0)


def test_shootout_on_first_leg_is_rejected(db):
    system = build_system(db, playoff_structure(two_legged_ties=True), 8)
    season_id = system.season.season_id
    division_id = system.divisions[2].division_id
    finish_regular_season(db, season_id)
    semis = PlayoffService(db).organize_playoffs(division_id, season_id)
    first_leg = next(m for m in semis if m.playoff_tie == 1 and m.playoff_leg == 1)

    with pytest.raises(ValueError):
        MatchService(db).record_match_result(first_leg.match_id, 1, 1, home_penalties=4, away_penalties=3)

    # A drawn first leg is fine
    MatchService(db).record_match_result(first_leg.match_id, 1, 1)


def test_playoff_results_do_not_touch_standings(db, playoff_league):
    season_id = playoff_league.season.season_id
    division_id = playoff_league.divisions[2].division_id
    finish_regular_season(db, season_id)
    semis = PlayoffService(db).organize_playoffs(division_id, season_id)
    before = {s.team_id: s.played for s in db.query(Standing)}

    MatchService(db).record_match_result(semis[0].match_id, 3, 0)

    assert {s.team_id: s.played for s in db.query(Standing)} == before


def test_not_ready_while_regular_matches_remain(db, playoff_league):
    season_id = playoff_league.season.season_id
    division_id = playoff_league.divisions[2].division_id
    finish_regular_season(db, season_id)
    match = db.query(Match).filter(Match.is_playoff.is_(False)).first()
    match.status = MatchStatus.POSTPONED.value
    match.home_goals = match.away_goals = None
    db.commit()

    result = PlayoffService(db).organize_playoffs(division_id, season_id)

    assert isinstance(result, PlayoffsNotReady)
    assert result.reason == "unfinished-matches"
    assert result.unfinished_matches == 1
    assert db.query(Match).filter(Match.is_playoff.is_(True)).count() == 0
    assert PlayoffService(db).get_playoff_phase(division_id, season_id) == PlayoffPhase.REGULAR_SEASON


def test_not_ready_without_schedule(db):
    system = build_system(db, playoff_structure(), 8, schedule=False)

    result = PlayoffService(db).organize_playoffs(system.divisions[2].division_id, system.season.season_id)

    assert isinstance(result, PlayoffsNotReady)
    assert result.reason == "no-schedule"


def test_division_without_playoff_slots(db, single_league):
    season_id = single_league.season.season_id
    division_id = single_league.divisions[1].division_id
    finish_regular_season(db, season_id)
    playoffs = PlayoffService(db)

    assert playoffs.organize_playoffs(division_id, season_id) == []
    assert playoffs.get_playoff_phase(division_id, season_id) == PlayoffPhase.COMPLETE


def test_organizing_twice_is_rejected(db, playoff_league):
    season_id = playoff_league.season.season_id
    division_id = playoff_league.divisions[2].division_id
    finish_regular_season(db, season_id)
    playoffs = PlayoffService(db)
    playoffs.organize_playoffs(division_id, season_id)

    with pytest.raises(AlreadyGeneratedError):
        playoffs.organize_playoffs(division_id, season_id)
    assert db.query(Match).filter(Match.is_playoff.is_(True)).count() == 2


def test_uneven_playoff_field_is_rejected(db):
    system = build_system(db, playoff_structure(promote_playoff_slots=3), 8)
    season_id = system.season.season_id
    division_id = system.divisions[2].division_id
    finish_regular_season(db, season_id)

    with pytest.raises(InvalidPlayoffBracketError):
        PlayoffService(db).organize_playoffs(division_id, season_id)
    assert db.query(Match).filter(Match.is_playoff.is_(True)).count() == 0


def test_entrants_are_seeded_across_leagues(db):
    structure = [division_config(2, teams_per_league=4, total_leagues=2, promote_slots=1, promote_playoff_slots=2,
                                 playoff_promotion_slots=2)]
    system = build_system(db, structure, 8)
    season_id = system.season.season_id
    division_id = system.divisions[2].division_id
    finish_regular_season(db, season_id)

    matches = PlayoffService(db).organize_playoffs(division_id, season_id)

    # Group A: T1..T4, group B: T5..T8; slice is positions 2-3 of each
    # Seeds: T2 (A2), T6 (B2), T3 (A3), T7 (B3) -> 1v4, 2v3
    assert ties(matches) == [(1, 1, "T2", "T7"), (2, 1, "T6", "T3")]
    assert {m.playoff_round for m in matches} == {"Semifinal"}


def test_decided_tie_rejects_a_new_first_leg_result(db):
    system = build_system(db, playoff_structure(two_legged_ties=True), 8)
    season_id = system.season.season_id
    division_id = system.divisions[2].division_id
    finish_regular_season(db, season_id)
    playoffs = PlayoffService(db)
    legs = {(m.playoff_tie, m.playoff_leg): m for m in playoffs.organize_playoffs(division_id, season_id)}

    match_service = MatchService(db)
    match_service.record_match_result(legs[(2, 1)].match_id, 1, 0)   # T5 1-0 T4
    match_service.record_match_result(legs[(2, 2)].match_id, 0, 0)   # T5 through 1-0

    # Tie 1 is still open, so the bracket has not advanced yet
    with pytest.raises(ValueError):
        match_service.record_match_result(legs[(2, 1)].match_id, 0, 0)
    db.refresh(legs[(2, 1)])
    assert (legs[(2, 1)].home_goals, legs[(2, 1)].away_goals) == (1, 0)

    match_service.record_match_result(legs[(1, 1)].match_id, 1, 0)   # T6 1-0 T3
    match_service.record_match_result(legs[(1, 2)].match_id, 2, 0)   # T3 through 2-1

    final = [m for m in playoffs.get_playoff_matches(division_id, season_id) if m.playoff_stage == 2]
    assert [(m.home_team_id, m.away_team_id) for m in final] == [("T3", "T5")]


def test_league_matches_are_frozen_once_playoffs_exist(db, playoff_league):
    season_id = playoff_league.season.season_id
    division_id = playoff_league.divisions[2].division_id
    finish_regular_season(db, season_id)
    playoffs = PlayoffService(db)
    playoffs.organize_playoffs(division_id, season_id)
    regular = db.query(Match).filter(Match.is_playoff.is_(False)).first()
    goals = (regular.home_goals, regular.away_goals)
    match_service = MatchService(db)

    with pytest.raises(RegularSeasonFrozenError) as excinfo:
        match_service.update_match_status(regular.match_id, MatchStatus.POSTPONED.value)
    assert excinfo.value.details["division_id"] == division_id

    with pytest.raises(RegularSeasonFrozenError):
        match_service.record_match_result(regular.match_id, 5, 5)

    db.refresh(regular)
    assert regular.status == MatchStatus.FINISHED.value
    assert (regular.home_goals, regular.away_goals) == goals
    assert playoffs.get_playoff_phase(division_id, season_id) == PlayoffPhase.PLAYOFFS_IN_PROGRESS


def test_unscheduled_league_keeps_division_out_of_playoffs(db):
    structure = [division_config(2, teams_per_league=4, total_leagues=2, promote_slots=1, promote_playoff_slots=2,
                                 playoff_promotion_slots=2)]
    system = build_system(db, structure, 8, schedule=False)
    season_id = system.season.season_id
    division_id = system.divisions[2].division_id
    group_a, group_b = system.leagues[2]
    FixtureService(db).generate_schedule(group_a.league_id, season_id, SEASON_START, 7)
    finish_regular_season(db, season_id)
    playoffs = PlayoffService(db)

    result = playoffs.organize_playoffs(division_id, season_id)

    assert isinstance(result, PlayoffsNotReady)
    assert result.reason == "no-schedule"
    assert result.league_ids == [group_b.league_id]
    assert not playoffs.has_playoffs(division_id, season_id)
    assert playoffs.get_playoff_phase(division_id, season_id) == PlayoffPhase.REGULAR_SEASON
