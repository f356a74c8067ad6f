import logging
from typing import Dict, List, Sequence
from sqlalchemy import func
from sqlalchemy.orm import Session
from league_app.assignments.models.assignment_model import TeamLeagueAssignment, AssignmentReason
from league_app.divisions.models.division_model import Division
from league_app.leagues.models.leagues_models import League
from league_app.teams.services.team_service import TeamService
from league_app.core.exceptions import NotFoundError
from league_app.core.utils import generate_custom_ids

logger = logging.getLogger(__name__)


class TeamAssignmentService:
    """
    Places teams into leagues for a season.

    Used for the initial popularity-based seeding and, after a season transition,
    for re-seeding teams that had no league in the closing season.
    """

    def __init__(self, db: Session):
        self.db = db
        self.team_service = TeamService(db)

    def get_league_team_ids(self, season_id: str, league_id: str) -> List[str]:
        """Teams assigned to a league for a season, best ranking metric first."""
        rows = (
            self.db.query(TeamLeagueAssignment.team_id)
            .filter(
                TeamLeagueAssignment.season_id == season_id,
                TeamLeagueAssignment.league_id == league_id,
            )
            .order_by(TeamLeagueAssignment.ranking_metric_at_assignment.desc(), TeamLeagueAssignment.team_id)
            .all()
        )
        return [row.team_id for row in rows]

    def get_season_assignments(self, season_id: str) -> List[TeamLeagueAssignment]:
        return (
            self.db.query(TeamLeagueAssignment)
            .filter(TeamLeagueAssignment.season_id == season_id)
            .all()
        )

    def league_occupancy(self, season_id: str, league_ids: Sequence[str]) -> Dict[str, int]:
        rows = (
            self.db.query(TeamLeagueAssignment.league_id, func.count(TeamLeagueAssignment.team_id))
            .filter(
                TeamLeagueAssignment.season_id == season_id,
                TeamLeagueAssignment.league_id.in_(list(league_ids)),
            )
            .group_by(TeamLeagueAssignment.league_id)
            .all()
        )
        occupancy = {league_id: 0 for league_id in league_ids}
        occupancy.update({league_id: count for league_id, count in rows})
        return occupancy

    def build_assignments(self, placements: Sequence[tuple], season_id: str,
                          followers: Dict[str, int]) -> List[TeamLeagueAssignment]:
        """Add assignment rows for (team_id, league_id, reason) placements (no commit)."""
        ids = generate_custom_ids(self.db, TeamLeagueAssignment, "TA", "assignment_id", len(placements))
        assignments = []
        for assignment_id, (team_id, league_id, reason) in zip(ids, placements):
            assignment = TeamLeagueAssignment(
                assignment_id=assignment_id,
                team_id=team_id,
                league_id=league_id,
                season_id=season_id,
                assignment_reason=reason,
                ranking_metric_at_assignment=followers.get(team_id, 0),
            )
            self.db.add(assignment)
            assignments.append(assignment)
        self.db.flush()
        return assignments

    def assign_teams_to_division(self, division_level: int, ranked_team_ids: Sequence[str], season_id: str,
                                 reason: AssignmentReason = AssignmentReason.FALLBACK) -> List[TeamLeagueAssignment]:
        """
        Spread ranked teams over the leagues of a division, least-filled league first
        (ties by group code). Raises ValueError when the division runs out of room.
        No commit: callers own the transaction.
        """
        division = self.db.query(Division).filter(Division.level == division_level).first()
        if not division:
            raise NotFoundError(f"No division at level {division_level}", division_level=division_level)

        leagues = (
            self.db.query(League)
            .filter(League.division_id == division.division_id)
            .order_by(League.group_code)
            .all()
        )
        occupancy = self.league_occupancy(season_id, [league.league_id for league in leagues])

        placements = []
        for team_id in ranked_team_ids:
            open_leagues = [league for league in leagues if occupancy[league.league_id] < league.max_teams]
            if not open_leagues:
                raise ValueError(
                    f"No room left in division {division_level} for team {team_id} "
                    f"({len(ranked_team_ids)} teams to place)"
                )
            target = min(open_leagues, key=lambda league: (occupancy[league.league_id], league.group_code))
            occupancy[target.league_id] += 1
            placements.append((team_id, target.league_id, reason))

        followers = self.team_service.get_followers(ranked_team_ids)
        assignments = self.build_assignments(placements, season_id, followers)
        logger.info(f"✅ {len(assignments)} teams placed in division {division_level} ({reason.value})")
        return assignments

    def seed_initial_assignments(self, season_id: str) -> List[TeamLeagueAssignment]:
        """Fill the pyramid top-down with every unassigned team ranked by followers."""
        try:
            assigned = {a.team_id for a in self.get_season_assignments(season_id)}
            ranked = [team for team in self.team_service.get_all_ranked() if team.team_id not in assigned]
            followers = {team.team_id: team.followers or 0 for team in ranked}

            leagues = (
                self.db.query(League)
                .join(Division, League.division_id == Division.division_id)
                .order_by(Division.level, League.group_code)
                .all()
            )
            occupancy = self.league_occupancy(season_id, [league.league_id for league in leagues])
            free_capacity = sum(league.max_teams - occupancy[league.league_id] for league in leagues)
            if len(ranked) > free_capacity:
                raise ValueError(f"There are {len(ranked)} teams but room for only {free_capacity}")

            placements = []
            team_iter = iter(ranked)
            for league in leagues:
                for _ in range(league.max_teams - occupancy[league.league_id]):
                    team = next(team_iter, None)
                    if team is None:
                        break
                    placements.append((team.team_id, league.league_id, AssignmentReason.INITIAL_RANKING))

            assignments = self.build_assignments(placements, season_id, followers)
            self.db.commit()
            logger.info(f"✅ {len(assignments)} teams assigned to leagues for season {season_id}")
            return assignments
        except Exception:
            self.db.rollback()
            raise
