import logging
from datetime import date
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from league_app.matches.models.match_model import Match, MatchStatus
from league_app.leagues.models.leagues_models import League
from league_app.leagues.services.league_service import LeagueService
from league_app.standings.services.standing_service import StandingService
from league_app.playoffs.services.playoff_service import PlayoffService
from league_app.core.exceptions import NotFoundError, RegularSeasonFrozenError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200

# Status changes allowed outside of result intake
MANUAL_STATUSES = (
    MatchStatus.SCHEDULED.value,
    MatchStatus.LIVE.value,
    MatchStatus.POSTPONED.value,
    MatchStatus.CANCELLED.value,
)


def _check_goals(**values):
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{name} must be a non-negative integer, got {value!r}")


class MatchService:
    def __init__(self, db: Session):
        self.db = db
        self.league_service = LeagueService(db)
        self.standing_service = StandingService(db)
        self.playoff_service = PlayoffService(db)

    def get_match(self, match_id: str, lock: bool = False) -> Match:
        query = self.db.query(Match).filter(Match.match_id == match_id)
        if lock:
            query = query.with_for_update()
        match = query.first()
        if not match:
            raise NotFoundError(f"Match {match_id} not found", match_id=match_id)
        return match

    def _check_regular_season_open(self, match: Match):
        """League matches are frozen once their division's playoff bracket exists."""
        division = self.league_service.get_division_for_league(match.league_id)
        if self.playoff_service.has_playoffs(division.division_id, match.season_id):
            raise RegularSeasonFrozenError(
                f"Playoffs of division {division.division_id} are already organized; "
                f"league match {match.match_id} can no longer change",
                match_id=match.match_id,
                division_id=division.division_id,
                season_id=match.season_id,
            )

    def apply_result(self, match: Match, home_goals: int, away_goals: int,
                     home_penalties: Optional[int] = None, away_penalties: Optional[int] = None):
        """Store a result and run the follow-ups (standings or bracket). No commit."""
        _check_goals(home_goals=home_goals, away_goals=away_goals)
        if match.status == MatchStatus.CANCELLED.value:
            raise ValueError(f"Match {match.match_id} is cancelled and cannot receive a result")

        if match.is_playoff:
            self.playoff_service.validate_playoff_result(match, home_goals, away_goals, home_penalties, away_penalties)
        else:
            if home_penalties is not None or away_penalties is not None:
                raise ValueError(f"Match {match.match_id} is a league match; shoot-outs only happen in playoffs")
            self._check_regular_season_open(match)

        match.home_goals = home_goals
        match.away_goals = away_goals
        match.home_penalties = home_penalties
        match.away_penalties = away_penalties
        match.status = MatchStatus.FINISHED.value
        self.db.flush()

        if match.is_playoff:
            division = self.league_service.get_division_for_league(match.league_id)
            self.playoff_service.advance_bracket(division.division_id, match.season_id)
        else:
            self.standing_service.on_match_finished(match)

    def record_match_result(self, match_id: str, home_goals: int, away_goals: int,
                            home_penalties: Optional[int] = None, away_penalties: Optional[int] = None) -> Match:
        try:
            match = self.get_match(match_id, lock=True)
            self.apply_result(match, home_goals, away_goals, home_penalties, away_penalties)
            self.db.commit()
            self.db.refresh(match)
            logger.info(f"✅ Result recorded for match {match_id}: {home_goals}-{away_goals}")
            return match
        except Exception:
            self.db.rollback()
            raise

    def update_match_status(self, match_id: str, status: str) -> Match:
        """
        Move a match to scheduled/live/postponed/cancelled. Cancelling a finished league
        match clears its goals and refreshes the table; finished playoff matches are final,
        and league matches are frozen once the division has a playoff bracket.
        """
        if status not in MANUAL_STATUSES:
            raise ValueError(f"Status must be one of {', '.join(MANUAL_STATUSES)}; use the result endpoint to finish a match")

        try:
            match = self.get_match(match_id, lock=True)
            was_finished = match.status == MatchStatus.FINISHED.value

            if was_finished and match.is_playoff:
                raise ValueError(f"Playoff match {match_id} is already finished and cannot change status")
            if not match.is_playoff:
                self._check_regular_season_open(match)

            match.status = status
            if was_finished:
                match.home_goals = None
                match.away_goals = None
            self.db.flush()

            if was_finished:
                self.standing_service._recompute(match.season_id, match.league_id)

            self.db.commit()
            self.db.refresh(match)
            logger.info(f"🔁 Match {match_id} status set to {status}")
            return match
        except Exception:
            self.db.rollback()
            raise

    def get_matches(self, season_id: Optional[str] = None, league_id: Optional[str] = None,
                    division_id: Optional[str] = None, team_id: Optional[str] = None,
                    matchday: Optional[int] = None, status: Optional[str] = None,
                    is_playoff: Optional[bool] = None, playoff_round: Optional[str] = None,
                    from_date: Optional[date] = None, to_date: Optional[date] = None,
                    page: int = 1, limit: int = 50) -> dict:
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        query = self.db.query(Match)
        if division_id:
            query = query.join(League, Match.league_id == League.league_id).filter(League.division_id == division_id)
        if season_id:
            query = query.filter(Match.season_id == season_id)
        if league_id:
            query = query.filter(Match.league_id == league_id)
        if team_id:
            query = query.filter(or_(Match.home_team_id == team_id, Match.away_team_id == team_id))
        if matchday is not None:
            query = query.filter(Match.matchday == matchday)
        if status:
            query = query.filter(Match.status == status)
        if is_playoff is not None:
            query = query.filter(Match.is_playoff.is_(is_playoff))
        if playoff_round:
            query = query.filter(Match.playoff_round == playoff_round)
        if from_date:
            query = query.filter(Match.scheduled_date >= from_date)
        if to_date:
            query = query.filter(Match.scheduled_date <= to_date)

        total = query.count()
        matches = (
            query.order_by(Match.matchday, Match.scheduled_date, Match.match_id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "matches": [match.to_dict() for match in matches],
            "page": page,
            "limit": limit,
            "total": total,
        }
