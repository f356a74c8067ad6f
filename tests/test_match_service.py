import pytest

from conftest import finish_regular_season
from league_app.core.exceptions import NotFoundError
from league_app.matches.models.match_model import Match, MatchStatus
from league_app.matches.services.match_service import MatchService
from league_app.standings.models.standings_model import Standing


def league_matches(db, league_id):
    return db.query(Match).filter(Match.league_id == league_id).order_by(Match.matchday, Match.match_id).all()


def test_team_winning_every_match_tops_the_table(db, single_league):
    league_id = single_league.leagues[1][0].league_id
    service = MatchService(db)

    for match in league_matches(db, league_id):
        if match.home_team_id == "T4":
            service.record_match_result(match.match_id, 2, 0)
        elif match.away_team_id == "T4":
            service.record_match_result(match.match_id, 0, 2)
        else:
            service.record_match_result(match.match_id, 1, 1)

    top = db.query(Standing).filter(Standing.league_id == league_id, Standing.position == 1).one()
    assert top.team_id == "T4"
    assert (top.played, top.won, top.drawn, top.lost, top.points) == (6, 6, 0, 0, 18)
    assert (top.goals_for, top.goals_against, top.goal_difference) == (12, 0, 12)


def test_result_updates_both_teams(db, single_league):
    match = league_matches(db, single_league.leagues[1][0].league_id)[0]

    MatchService(db).record_match_result(match.match_id, 3, 1)

    rows = {s.team_id: s for s in db.query(Standing)}
    assert rows[match.home_team_id].points == 3
    assert rows[match.away_team_id].lost == 1
    assert sum(s.played for s in rows.values()) == 2
    assert match.status == MatchStatus.FINISHED.value


@pytest.mark.parametrize("goals", [(-1, 0), (0, -2), (1.5, 0), ("2", 1)])
def test_invalid_goals_are_rejected(db, single_league, goals):
    match = league_matches(db, single_league.leagues[1][0].league_id)[0]

    with pytest.raises(ValueError):
        MatchService(db).record_match_result(match.match_id, *goals)

    db.refresh(match)
    assert match.status == MatchStatus.SCHEDULED.value


def test_unknown_match(db, single_league):
    with pytest.raises(NotFoundError):
        MatchService(db).record_match_result("M999", 1, 0)


def test_cancelled_match_takes_no_result(db, single_league):
    match = league_matches(db, single_league.leagues[1][0].league_id)[0]
    service = MatchService(db)
    service.update_match_status(match.match_id, MatchStatus.CANCELLED.value)

    with pytest.raises(ValueError):
        service.record_match_result(match.match_id, 1, 0)


def test_league_match_takes_no_shootout(db, single_league):
    match = league_matches(db, single_league.leagues[1][0].league_id)[0]

    with pytest.raises(ValueError):
        MatchService(db).record_match_result(match.match_id, 1, 1, home_penalties=5, away_penalties=4)


def test_cancelling_finished_match_refreshes_table(db, single_league):
    match = league_matches(db, single_league.leagues[1][0].league_id)[0]
    service = MatchService(db)
    service.record_match_result(match.match_id, 2, 0)

    service.update_match_status(match.match_id, MatchStatus.CANCELLED.value)

    db.refresh(match)
    assert (match.home_goals, match.away_goals) == (None, None)
    assert all(s.played == 0 for s in db.query(Standing))


def test_finished_is_not_a_manual_status(db, single_league):
    match = league_matches(db, single_league.leagues[1][0].league_id)[0]

    with pytest.raises(ValueError):
        MatchService(db).update_match_status(match.match_id, MatchStatus.FINISHED.value)


def test_get_matches_filters(db, two_level_system):
    season_id = two_level_system.season.season_id
    service = MatchService(db)

    everything = service.get_matches(season_id=season_id, limit=200)
    assert everything["total"] == 24

    top_division = service.get_matches(division_id=two_level_system.divisions[1].division_id, limit=200)
    assert top_division["total"] == 12

    team = service.get_matches(team_id="T1", limit=200)
    assert team["total"] == 6
    assert all("T1" in (m["home_team_id"], m["away_team_id"]) for m in team["matches"])

    first_matchday = service.get_matches(season_id=season_id, matchday=1)
    assert first_matchday["total"] == 4

    page = service.get_matches(season_id=season_id, page=3, limit=10)
    assert (page["total"], len(page["matches"])) == (24, 4)

    finish_regular_season(db, season_id)
    assert service.get_matches(status=MatchStatus.SCHEDULED.value)["total"] == 0
    assert service.get_matches(is_playoff=True)["total"] == 0


def test_get_matches_rejects_bad_paging(db, single_league):
    with pytest.raises(ValueError):
        MatchService(db).get_matches(page=0)
    with pytest.raises(ValueError):
        MatchService(db).get_matches(limit=1000)
