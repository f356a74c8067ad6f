"""
Season Transition Engine.

Closing a season is a two-step affair: ``closure_report`` computes who goes up,
who goes down, who qualifies for the tournament and what is still unresolved;
``execute_transition`` applies that report atomically, closing the current
season and opening the next one with every team re-assigned.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from league_app.assignments.models.assignment_model import AssignmentReason
from league_app.assignments.services.team_assignment_service import TeamAssignmentService
from league_app.divisions.services.division_service import DivisionService
from league_app.leagues.services.league_service import LeagueService
from league_app.seasons.services.season_service import SeasonService
from league_app.standings.services.standing_service import StandingService
from league_app.playoffs.services.playoff_service import PlayoffService, PlayoffPhase
from league_app.teams.models.team_model import Team
from league_app.matches.models.match_model import MatchStatus
from league_app.teams.services.team_service import TeamService
from league_app.core.exceptions import TransitionBlockedError

logger = logging.getLogger(__name__)

OPEN_PHASES = (PlayoffPhase.REGULAR_SEASON, PlayoffPhase.PLAYOFFS_PENDING, PlayoffPhase.PLAYOFFS_IN_PROGRESS)


@dataclass
class TeamMovement:
    team_id: str
    league_id: str
    from_level: int
    to_level: int
    reason: AssignmentReason
    position: Optional[int] = None

    def to_dict(self):
        data = asdict(self)
        data["reason"] = self.reason.value
        return data


@dataclass
class PendingDivision:
    division_id: str
    level: int
    phase: str
    league_ids: List[str]
    unfinished_matches: int = 0
    open_playoff_matches: int = 0


@dataclass
class SeasonClosureReport:
    season_id: str
    promotions: List[TeamMovement] = field(default_factory=list)
    relegations: List[TeamMovement] = field(default_factory=list)
    tournament_qualifiers: List[dict] = field(default_factory=list)
    pending_playoffs: List[PendingDivision] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def can_transition(self) -> bool:
        return not self.pending_playoffs and not self.errors

    def to_dict(self):
        return {
            "season_id": self.season_id,
            "can_transition": self.can_transition,
            "promotions": [movement.to_dict() for movement in self.promotions],
            "relegations": [movement.to_dict() for movement in self.relegations],
            "tournament_qualifiers": self.tournament_qualifiers,
            "pending_playoffs": [asdict(pending) for pending in self.pending_playoffs],
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class TransitionResult:
    closed_season_id: str
    new_season_id: str
    new_season_name: str
    assignments: Dict[str, int]
    report: SeasonClosureReport

    def to_dict(self):
        return {
            "closed_season_id": self.closed_season_id,
            "new_season_id": self.new_season_id,
            "new_season_name": self.new_season_name,
            "assignments": self.assignments,
            "report": self.report.to_dict(),
        }


class SeasonTransitionService:
    def __init__(self, db: Session, assignment_service: Optional[TeamAssignmentService] = None):
        self.db = db
        self.season_service = SeasonService(db)
        self.division_service = DivisionService(db)
        self.league_service = LeagueService(db)
        self.standing_service = StandingService(db)
        self.playoff_service = PlayoffService(db)
        self.team_service = TeamService(db)
        self.assignment_service = assignment_service or TeamAssignmentService(db)

    def closure_report(self, season_id: str) -> SeasonClosureReport:
        """Read-only: who moves where once the season is closed, and what still blocks closing it."""
        self.season_service.get_season(season_id)
        report = SeasonClosureReport(season_id=season_id)

        divisions = self.division_service.get_all_divisions()
        levels = {division.level for division in divisions}
        assigned_leagues = {a.league_id for a in self.assignment_service.get_season_assignments(season_id)}

        for division in divisions:
            leagues = self.league_service.get_leagues_in_division(division.division_id)
            league_ids = [league.league_id for league in leagues]
            counts = self.playoff_service.regular_season_counts(division.division_id, season_id)

            if counts["total"] == 0 and not assigned_leagues.intersection(league_ids):
                continue

            phase = self.playoff_service.get_playoff_phase(division.division_id, season_id)
            if phase in OPEN_PHASES:
                open_playoff = [
                    match for match in self.playoff_service.get_playoff_matches(division.division_id, season_id)
                    if match.status != MatchStatus.FINISHED.value
                ]
                if phase == PlayoffPhase.REGULAR_SEASON:
                    pending_leagues = self.playoff_service.open_league_ids(counts) or league_ids
                elif open_playoff:
                    pending_leagues = sorted({match.league_id for match in open_playoff})
                else:
                    pending_leagues = league_ids
                report.pending_playoffs.append(PendingDivision(
                    division_id=division.division_id,
                    level=division.level,
                    phase=phase.value,
                    league_ids=pending_leagues,
                    unfinished_matches=counts["unfinished"],
                    open_playoff_matches=len(open_playoff),
                ))

            has_lower = division.level + 1 in levels
            if division.relegate_slots and not has_lower:
                report.warnings.append(
                    f"Division {division.division_id} (level {division.level}) has relegation slots "
                    f"but no lower division; relegation skipped"
                )

            direct = set()
            for league in leagues:
                table = self.standing_service.build_table(season_id, league.league_id)
                self._collect_league_moves(report, division, league.league_id, table, has_lower, direct)

            if division.level > 1 and phase == PlayoffPhase.PLAYOFFS_COMPLETE:
                self._collect_playoff_winners(report, division, direct, len(leagues))

        moved_up = {m.team_id for m in report.promotions}
        for movement in report.relegations:
            if movement.team_id in moved_up:
                report.errors.append(f"Team {movement.team_id} is both promoted and relegated")

        if report.warnings:
            for warning in report.warnings:
                logger.warning(f"⚠️ {warning}")
        return report

    def _collect_league_moves(self, report, division, league_id, table, has_lower, direct):
        if division.level > 1:
            for row in table[:division.promote_slots]:
                direct.add(row["team_id"])
                report.promotions.append(TeamMovement(
                    team_id=row["team_id"], league_id=league_id,
                    from_level=division.level, to_level=division.level - 1,
                    reason=AssignmentReason.PROMOTION, position=row["position"],
                ))

        if has_lower and division.relegate_slots:
            for row in table[-division.relegate_slots:]:
                report.relegations.append(TeamMovement(
                    team_id=row["team_id"], league_id=league_id,
                    from_level=division.level, to_level=division.level + 1,
                    reason=AssignmentReason.RELEGATION, position=row["position"],
                ))

        if division.level == 1:
            for row in table[:division.tournament_slots]:
                report.tournament_qualifiers.append({
                    "team_id": row["team_id"], "league_id": league_id, "position": row["position"],
                })

    def _collect_playoff_winners(self, report, division, direct, league_count):
        winners = self.playoff_service.get_playoff_winners(division.division_id, report.season_id)
        for winner in winners:
            if winner["team_id"] in direct:
                report.errors.append(
                    f"Playoff winner {winner['team_id']} of division {division.division_id} was also promoted directly"
                )
                continue
            report.promotions.append(TeamMovement(
                team_id=winner["team_id"], league_id=winner["league_id"],
                from_level=division.level, to_level=division.level - 1,
                reason=AssignmentReason.PLAYOFF_WIN,
            ))

        promoted = sum(1 for m in report.promotions if m.from_level == division.level)
        allowed = (division.promote_slots + division.promote_playoff_slots) * league_count
        if promoted > allowed:
            report.errors.append(
                f"Division {division.division_id} promotes {promoted} teams but only {allowed} slots exist"
            )

    def _plan_assignments(self, closing_season_id: str, report: SeasonClosureReport):
        """Placements for the next season: retained teams keep their league, movers change level."""
        movers = OrderedDict()
        for movement in report.promotions + report.relegations:
            movers[movement.team_id] = movement

        retained = []
        for assignment in self.assignment_service.get_season_assignments(closing_season_id):
            if assignment.team_id not in movers:
                retained.append((assignment.team_id, assignment.league_id, AssignmentReason.INITIAL_RANKING))

        moves_by_target = OrderedDict()
        for movement in movers.values():
            moves_by_target.setdefault((movement.to_level, movement.reason), []).append(movement.team_id)

        return retained, moves_by_target

    def execute_transition(self, season_id: str, next_season_name: Optional[str] = None,
                           start_date: Optional[date] = None) -> TransitionResult:
        """
        Close ``season_id`` and open the next one in a single transaction.
        Raises TransitionBlockedError (nothing written) while anything is pending or inconsistent.
        """
        report = self.closure_report(season_id)
        if not report.can_transition:
            raise TransitionBlockedError(
                f"Season {season_id} cannot be closed yet",
                report=report,
                season_id=season_id,
            )

        try:
            season = self.season_service.get_season(season_id, lock=True)
            if season.is_completed:
                raise ValueError(f"Season {season_id} is already completed")

            season.is_active = False
            season.is_completed = True
            season.end_date = date.today()
            self.db.flush()

            new_season = self.season_service.create_season(
                season.year + 1, name=next_season_name, activate=True, start_date=start_date
            )

            retained, moves_by_target = self._plan_assignments(season_id, report)
            counts = {reason.value: 0 for reason in AssignmentReason}

            followers = self.team_service.get_followers(team_id for team_id, _, _ in retained)
            self.assignment_service.build_assignments(retained, new_season.season_id, followers)
            counts[AssignmentReason.INITIAL_RANKING.value] += len(retained)

            for (level, reason), team_ids in moves_by_target.items():
                placed = self.assignment_service.assign_teams_to_division(level, team_ids, new_season.season_id, reason)
                counts[reason.value] += len(placed)

            assigned = {a.team_id for a in self.assignment_service.get_season_assignments(season_id)}
            unassigned = [team_id for (team_id,) in self.db.query(Team.team_id) if team_id not in assigned]
            if unassigned:
                lowest = self.division_service.get_lowest_division()
                ranked = self.team_service.rank_by_followers(unassigned)
                placed = self.assignment_service.assign_teams_to_division(
                    lowest.level, ranked, new_season.season_id, AssignmentReason.FALLBACK
                )
                counts[AssignmentReason.FALLBACK.value] += len(placed)

            self.db.commit()
            logger.info(
                f"✅ Season {season_id} closed; season {new_season.season_id} ({new_season.name}) is now active"
            )
            return TransitionResult(
                closed_season_id=season_id,
                new_season_id=new_season.season_id,
                new_season_name=new_season.name,
                assignments=counts,
                report=report,
            )
        except ValueError as e:
            self.db.rollback()
            logger.error(f"❌ Transition of season {season_id} aborted: {e}")
            raise TransitionBlockedError(str(e), report=report, season_id=season_id) from e
        except Exception:
            self.db.rollback()
            raise
