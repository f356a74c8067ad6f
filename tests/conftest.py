"""
Shared fixtures: an in-memory SQLite database per test and small league systems to play with.
"""
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from league_app.core.database import init_db
from league_app.assignments.services.team_assignment_service import TeamAssignmentService
from league_app.divisions.services.division_service import DivisionService
from league_app.leagues.services.league_service import LeagueService
from league_app.matches.models.match_model import Match, MatchStatus
from league_app.matches.services.fixture_service import FixtureService
from league_app.seasons.services.season_service import SeasonService
from league_app.standings.services.standing_service import StandingService
from league_app.teams.services.team_service import TeamService

SEASON_START = date(2024, 8, 1)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def division_config(level, teams_per_league=4, total_leagues=1, **slots):
    config = {
        "level": level,
        "name": f"Division {level}",
        "total_leagues": total_leagues,
        "teams_per_league": teams_per_league,
        "promote_slots": 0,
        "promote_playoff_slots": 0,
        "relegate_slots": 0,
        "tournament_slots": 0,
        "playoff_promotion_slots": 1,
    }
    config.update(slots)
    return config


def build_system(db, structure, team_count, schedule=True):
    """
    Divisions from ``structure``, ``team_count`` teams (T1 most followed, then T2, ...),
    an active 2024 season with every team seeded, and optionally all schedules generated.
    """
    divisions = DivisionService(db).initialize_league_system(structure)
    season = SeasonService(db).start_season(2024, start_date=SEASON_START)
    teams = TeamService(db).create_teams(
        [{"team_name": f"Team {i:02d}", "followers": (team_count - i) * 100} for i in range(team_count)]
    )
    TeamAssignmentService(db).seed_initial_assignments(season.season_id)
    if schedule:
        FixtureService(db).generate_season_schedule(season.season_id, SEASON_START, 7)

    league_service = LeagueService(db)
    leagues = {division.level: league_service.get_leagues_in_division(division.division_id) for division in divisions}
    return SimpleNamespace(
        divisions={division.level: division for division in divisions},
        leagues=leagues,
        season=season,
        teams=teams,
    )


def favourite_wins(db, home_team_id, away_team_id):
    """Scoreline where the more followed team wins: home favourite 2-0, away favourite 0-1."""
    followers = TeamService(db).get_followers([home_team_id, away_team_id])
    if followers[home_team_id] >= followers[away_team_id]:
        return 2, 0
    return 0, 1


def finish_regular_season(db, season_id, score=favourite_wins):
    """Write results straight to every scheduled league match, then rebuild all tables."""
    matches = (
        db.query(Match)
        .filter(Match.season_id == season_id, Match.is_playoff.is_(False),
                Match.status == MatchStatus.SCHEDULED.value)
        .all()
    )
    for match in matches:
        match.home_goals, match.away_goals = score(db, match.home_team_id, match.away_team_id)
        match.status = MatchStatus.FINISHED.value
    db.commit()
    StandingService(db).recompute_season(season_id)


@pytest.fixture
def single_league(db):
    """One division, one league of four teams, schedule generated."""
    return build_system(db, [division_config(1, teams_per_league=4)], 4)


@pytest.fixture
def playoff_league(db):
    """Eight-team league: two direct promotions and four playoff places."""
    structure = [division_config(2, teams_per_league=8, promote_slots=2, promote_playoff_slots=4)]
    return build_system(db, structure, 8)


@pytest.fixture
def two_level_system(db):
    """
    Level 1: four teams, two relegated, one tournament place.
    Level 2: room for five, one direct promotion and a two-team playoff.
    """
    structure = [
        division_config(1, teams_per_league=4, relegate_slots=2, tournament_slots=1),
        division_config(2, teams_per_league=5, promote_slots=1, promote_playoff_slots=2),
    ]
    return build_system(db, structure, 8)
