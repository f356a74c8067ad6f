import logging
import random
from datetime import date
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from league_app.matches.models.match_model import Match, MatchStatus
from league_app.matches.services.match_service import MatchService
from league_app.playoffs.services.playoff_service import PlayoffService, PlayoffPhase
from league_app.divisions.services.division_service import DivisionService
from league_app.teams.services.team_service import TeamService
from league_app.core.config import settings
from league_app.core.exceptions import PlayoffDrawNotAllowedError

logger = logging.getLogger(__name__)

MAX_GOAL_EVENTS = 6
RANDOM_EVENT_RATE = 0.25
HOME_BONUS_RATE = 0.15
SHOOTOUT_KICKS = 5
PENALTY_CONVERSION = 0.75


class MatchSimulationService:
    """
    Popularity-weighted result simulation.

    Each match draws 0-6 goal events. A quarter of them go either way at random; the rest
    favour the side with the larger share of followers, clamped to a 20%-80% range.
    Pass ``seed`` (or set SIMULATION_SEED) to replay the same season.
    """

    def __init__(self, db: Session, seed: Optional[int] = None):
        self.db = db
        self.match_service = MatchService(db)
        self.playoff_service = PlayoffService(db)
        self.division_service = DivisionService(db)
        self.team_service = TeamService(db)
        self.rng = random.Random(seed if seed is not None else settings.SIMULATION_SEED)

    def home_advantage(self, home_followers: int, away_followers: int) -> float:
        total = home_followers + away_followers
        share = home_followers / total if total > 0 else 0.5
        return 0.2 + share * 0.6

    def simulate_score(self, home_followers: int, away_followers: int) -> Tuple[int, int]:
        advantage = self.home_advantage(home_followers, away_followers)
        home_goals = away_goals = 0

        events = self.rng.randint(0, MAX_GOAL_EVENTS)
        for _ in range(events):
            threshold = 0.5 if self.rng.random() < RANDOM_EVENT_RATE else advantage
            if self.rng.random() < threshold:
                home_goals += 1
            else:
                away_goals += 1

        if events > 0 and self.rng.random() < HOME_BONUS_RATE:
            home_goals += 1

        return home_goals, away_goals

    def simulate_shootout(self) -> Tuple[int, int]:
        """Five kicks each, then sudden death until one side misses."""
        home = sum(self.rng.random() < PENALTY_CONVERSION for _ in range(SHOOTOUT_KICKS))
        away = sum(self.rng.random() < PENALTY_CONVERSION for _ in range(SHOOTOUT_KICKS))
        while home == away:
            home += self.rng.random() < PENALTY_CONVERSION
            away += self.rng.random() < PENALTY_CONVERSION
        return home, away

    def _play(self, match: Match) -> Match:
        if match.status not in (MatchStatus.SCHEDULED.value, MatchStatus.LIVE.value):
            raise ValueError(f"Match {match.match_id} is {match.status} and cannot be simulated")

        followers = self.team_service.get_followers([match.home_team_id, match.away_team_id])
        home_goals, away_goals = self.simulate_score(
            followers.get(match.home_team_id, 0), followers.get(match.away_team_id, 0)
        )

        home_penalties = away_penalties = None
        if match.is_playoff:
            try:
                self.playoff_service.validate_playoff_result(match, home_goals, away_goals)
            except PlayoffDrawNotAllowedError:
                home_penalties, away_penalties = self.simulate_shootout()

        return self.match_service.record_match_result(
            match.match_id, home_goals, away_goals, home_penalties, away_penalties
        )

    def simulate_match(self, match_id: str) -> Match:
        match = self.match_service.get_match(match_id)
        result = self._play(match)
        logger.info(f"✅ Simulated {result.match_id}: {result.home_team_id} {result.home_goals}-{result.away_goals} {result.away_team_id}")
        return result

    def _next_scheduled(self, season_id: str, until: Optional[date] = None) -> Optional[Match]:
        query = self.db.query(Match).filter(
            Match.season_id == season_id,
            Match.status == MatchStatus.SCHEDULED.value,
        )
        if until:
            query = query.filter(Match.scheduled_date <= until)
        return query.order_by(Match.scheduled_date, Match.matchday, Match.match_id).first()

    def _organize_ready_playoffs(self, season_id: str) -> int:
        created = 0
        for division in self.division_service.get_all_divisions():
            phase = self.playoff_service.get_playoff_phase(division.division_id, season_id)
            if phase == PlayoffPhase.PLAYOFFS_PENDING:
                result = self.playoff_service.organize_playoffs(division.division_id, season_id)
                if isinstance(result, list):
                    created += len(result)
        return created

    def simulate_pending(self, season_id: str, until: Optional[date] = None,
                         organize_playoffs: bool = True) -> List[Match]:
        """
        Simulate every scheduled match of the season in date order. Playoff rounds created
        along the way are picked up too; with ``organize_playoffs`` divisions whose regular
        season ends during the run get their bracket organized automatically.
        """
        simulated = []
        while True:
            match = self._next_scheduled(season_id, until)
            if match is None:
                if organize_playoffs and self._organize_ready_playoffs(season_id):
                    continue
                break
            simulated.append(self._play(match))

        logger.info(f"✅ {len(simulated)} matches simulated for season {season_id}")
        return simulated
