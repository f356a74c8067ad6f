"""
Double round-robin schedule generation.

Circle method: the first team stays fixed while the other N-1 rotate one slot per
round, giving N-1 matchdays per leg. The second leg replays the first with home
and away swapped, so every ordered pair (A, B) appears exactly once and each team
has N-1 home and N-1 away fixtures. Same roster order => same schedule.
"""
import logging
from collections import Counter
from datetime import date, timedelta
from typing import List, Sequence, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from league_app.matches.models.match_model import Match, MatchStatus
from league_app.leagues.services.league_service import LeagueService
from league_app.seasons.services.season_service import SeasonService
from league_app.assignments.services.team_assignment_service import TeamAssignmentService
from league_app.core.exceptions import InvalidRosterSize, ScheduleIntegrityError, AlreadyGeneratedError
from league_app.core.utils import generate_custom_ids

logger = logging.getLogger(__name__)

MIN_DAYS_PER_MATCHDAY = 1
MAX_DAYS_PER_MATCHDAY = 30


def is_fixture_conflict(error: IntegrityError) -> bool:
    """True when the violated constraint is the (season, league, fixture_key) guard."""
    message = str(error.orig)
    return "uq_match_fixture" in message or "fixture_key" in message


def round_robin_rounds(team_ids: Sequence[str]) -> List[List[Tuple[str, str]]]:
    """
    Single leg: list of rounds, each a list of (home, away) pairs.
    Raises InvalidRosterSize for odd, tiny or duplicated rosters (no bye mechanism).
    """
    teams = list(team_ids)
    if len(teams) < 2 or len(teams) % 2 == 1:
        raise InvalidRosterSize(
            f"A league needs an even number of teams (at least 2), got {len(teams)}",
            team_count=len(teams),
        )
    if len(set(teams)) != len(teams):
        duplicates = sorted(team for team, count in Counter(teams).items() if count > 1)
        raise InvalidRosterSize("Roster contains duplicated teams", duplicates=duplicates)

    n = len(teams)
    rounds = []
    order = list(teams)
    for round_index in range(n - 1):
        pairs = []
        for i in range(n // 2):
            home, away = order[i], order[n - 1 - i]
            # Fixed team alternates home/away so it never hosts every round
            if i == 0 and round_index % 2 == 1:
                home, away = away, home
            pairs.append((home, away))
        rounds.append(pairs)

        # Rotate: keep slot 0, move the last team into slot 1
        order = [order[0], order[-1]] + order[1:-1]

    return rounds


def build_fixtures(team_ids: Sequence[str], start_date: date, days_per_matchday: int) -> List[dict]:
    """Both legs as plain fixture dicts: matchday, scheduled_date, home_team_id, away_team_id."""
    if not MIN_DAYS_PER_MATCHDAY <= days_per_matchday <= MAX_DAYS_PER_MATCHDAY:
        raise ValueError(
            f"days_per_matchday must be between {MIN_DAYS_PER_MATCHDAY} and {MAX_DAYS_PER_MATCHDAY}, "
            f"got {days_per_matchday}"
        )

    first_leg = round_robin_rounds(team_ids)
    second_leg = [[(away, home) for home, away in pairs] for pairs in first_leg]

    fixtures = []
    for matchday_index, pairs in enumerate(first_leg + second_leg):
        scheduled = start_date + timedelta(days=matchday_index * days_per_matchday)
        for home, away in pairs:
            fixtures.append({
                "matchday": matchday_index + 1,
                "scheduled_date": scheduled,
                "home_team_id": home,
                "away_team_id": away,
            })
    return fixtures


def verify_fixtures(team_ids: Sequence[str], fixtures: Sequence[dict]) -> List[str]:
    """Return the list of integrity problems (empty when the schedule is a valid double round-robin)."""
    n = len(team_ids)
    errors = []

    if len(fixtures) != n * (n - 1):
        errors.append(f"expected {n * (n - 1)} matches, got {len(fixtures)}")

    home_counts = Counter(f["home_team_id"] for f in fixtures)
    away_counts = Counter(f["away_team_id"] for f in fixtures)
    for team_id in team_ids:
        if home_counts[team_id] != n - 1:
            errors.append(f"team {team_id} has {home_counts[team_id]} home matches (expected {n - 1})")
        if away_counts[team_id] != n - 1:
            errors.append(f"team {team_id} has {away_counts[team_id]} away matches (expected {n - 1})")

    self_matches = [f for f in fixtures if f["home_team_id"] == f["away_team_id"]]
    if self_matches:
        errors.append(f"{len(self_matches)} matches pair a team with itself")

    pair_counts = Counter((f["home_team_id"], f["away_team_id"]) for f in fixtures)
    repeated = [pair for pair, count in pair_counts.items() if count > 1]
    if repeated:
        errors.append(f"{len(repeated)} ordered pairings repeat")

    per_matchday = Counter()
    for f in fixtures:
        per_matchday[(f["matchday"], f["home_team_id"])] += 1
        per_matchday[(f["matchday"], f["away_team_id"])] += 1
    if any(count > 1 for count in per_matchday.values()):
        errors.append("a team plays more than once on the same matchday")

    return errors


def regular_fixture_key(home_team_id: str, away_team_id: str) -> str:
    return f"R:{home_team_id}:{away_team_id}"


class FixtureService:
    def __init__(self, db: Session):
        self.db = db
        self.league_service = LeagueService(db)
        self.season_service = SeasonService(db)
        self.assignment_service = TeamAssignmentService(db)

    def has_regular_matches(self, season_id: str, league_id: str) -> bool:
        return (
            self.db.query(Match.match_id)
            .filter(
                Match.season_id == season_id,
                Match.league_id == league_id,
                Match.is_playoff.is_(False),
            )
            .first()
            is not None
        )

    def generate(self, league_teams: Sequence[str], season_id: str, league_id: str,
                 start_date: date, days_per_matchday: int) -> List[Match]:
        """
        Build, verify and stage the full double round-robin for one league (no commit).
        Nothing is added to the session unless verification passes.
        """
        if self.has_regular_matches(season_id, league_id):
            raise AlreadyGeneratedError(
                f"Matches already exist for league {league_id} in season {season_id}",
                season_id=season_id,
                league_id=league_id,
            )

        fixtures = build_fixtures(league_teams, start_date, days_per_matchday)
        errors = verify_fixtures(league_teams, fixtures)
        if errors:
            logger.error(f"❌ Schedule verification failed for league {league_id}: {errors}")
            raise ScheduleIntegrityError(
                f"Generated schedule for league {league_id} failed verification",
                season_id=season_id,
                league_id=league_id,
                team_count=len(league_teams),
                match_count=len(fixtures),
                errors=errors,
            )

        ids = generate_custom_ids(self.db, Match, "M", "match_id", len(fixtures))
        matches = [
            Match(
                match_id=match_id,
                season_id=season_id,
                league_id=league_id,
                home_team_id=fixture["home_team_id"],
                away_team_id=fixture["away_team_id"],
                matchday=fixture["matchday"],
                scheduled_date=fixture["scheduled_date"],
                status=MatchStatus.SCHEDULED.value,
                is_playoff=False,
                fixture_key=regular_fixture_key(fixture["home_team_id"], fixture["away_team_id"]),
            )
            for match_id, fixture in zip(ids, fixtures)
        ]
        self.db.add_all(matches)
        self.db.flush()

        logger.info(
            f"✅ {len(matches)} matches over {2 * (len(league_teams) - 1)} matchdays generated "
            f"for league {league_id}"
        )
        return matches

    def generate_schedule(self, league_id: str, season_id: str, start_date: date,
                          days_per_matchday: int) -> List[Match]:
        """Generate one league's schedule from its season roster in a single transaction."""
        try:
            self.season_service.get_season(season_id)
            self.league_service.get_league(league_id)

            team_ids = self.assignment_service.get_league_team_ids(season_id, league_id)
            matches = self.generate(team_ids, season_id, league_id, start_date, days_per_matchday)
            self.db.commit()
            return matches
        except IntegrityError as e:
            self.db.rollback()
            if not is_fixture_conflict(e):
                raise
            raise AlreadyGeneratedError(
                f"Concurrent generation detected for league {league_id} in season {season_id}",
                season_id=season_id,
                league_id=league_id,
            ) from e
        except Exception:
            self.db.rollback()
            raise

    def generate_season_schedule(self, season_id: str, start_date: date, days_per_matchday: int) -> dict:
        """Generate every league of the season that has assigned teams; all-or-nothing."""
        try:
            self.season_service.get_season(season_id)

            league_ids = sorted({a.league_id for a in self.assignment_service.get_season_assignments(season_id)})
            if not league_ids:
                raise ValueError(f"No teams are assigned to any league in season {season_id}")

            results = {}
            for league_id in league_ids:
                team_ids = self.assignment_service.get_league_team_ids(season_id, league_id)
                matches = self.generate(team_ids, season_id, league_id, start_date, days_per_matchday)
                results[league_id] = len(matches)

            self.db.commit()
            logger.info(f"✅ Season {season_id} schedule generated for {len(results)} leagues")
            return {"season_id": season_id, "matches_per_league": results, "total_matches": sum(results.values())}
        except IntegrityError as e:
            self.db.rollback()
            if not is_fixture_conflict(e):
                raise
            raise AlreadyGeneratedError(
                f"Concurrent generation detected for season {season_id}", season_id=season_id
            ) from e
        except Exception:
            self.db.rollback()
            raise
