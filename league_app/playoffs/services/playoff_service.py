"""
Playoff Engine.

Builds a knockout bracket for a division once its regular season is over and
advances it round by round as results come in. A division's playoff slice is
positions ``promote_slots + 1 .. promote_slots + promote_playoff_slots`` of every
league; entrants are seeded across leagues and paired best vs worst.

Ties never end level: aggregate goals, then away goals (two-legged ties only),
then the shoot-out recorded on the deciding match.
"""
import enum
import logging
from dataclasses import dataclass, field, asdict
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Union
from sqlalchemy import func
from sqlalchemy.orm import Session
from league_app.matches.models.match_model import Match, MatchStatus, UNFINISHED_STATUSES
from league_app.leagues.models.leagues_models import League
from league_app.assignments.models.assignment_model import TeamLeagueAssignment
from league_app.divisions.services.division_service import DivisionService
from league_app.leagues.services.league_service import LeagueService
from league_app.seasons.services.season_service import SeasonService
from league_app.standings.services.standing_service import StandingService
from league_app.teams.services.team_service import TeamService
from league_app.core.config import settings
from league_app.core.exceptions import (
    AlreadyGeneratedError, InvalidPlayoffBracketError, PlayoffDrawNotAllowedError,
)
from league_app.core.utils import generate_custom_ids

logger = logging.getLogger(__name__)


class PlayoffPhase(str, enum.Enum):
    REGULAR_SEASON = "regular-season"
    PLAYOFFS_PENDING = "playoffs-pending"
    PLAYOFFS_IN_PROGRESS = "playoffs-in-progress"
    PLAYOFFS_COMPLETE = "playoffs-complete"
    COMPLETE = "complete"


@dataclass
class PlayoffsNotReady:
    """Returned instead of a bracket while the division cannot start its playoffs yet."""
    division_id: str
    season_id: str
    reason: str
    unfinished_matches: int = 0
    league_ids: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass
class Entrant:
    team_id: str
    seed: int
    league_id: str


@dataclass
class LegResult:
    home_team_id: str
    away_team_id: str
    home_goals: int
    away_goals: int
    home_penalties: Optional[int] = None
    away_penalties: Optional[int] = None
    leg: int = 1

    @classmethod
    def from_match(cls, match: Match):
        return cls(
            home_team_id=match.home_team_id,
            away_team_id=match.away_team_id,
            home_goals=match.home_goals,
            away_goals=match.away_goals,
            home_penalties=match.home_penalties,
            away_penalties=match.away_penalties,
            leg=match.playoff_leg or 1,
        )


@dataclass
class TieOutcome:
    winner_team_id: str
    loser_team_id: str
    decided_by: str  # "aggregate", "away-goals" or "penalties"


def round_name(field_size: int) -> str:
    names = {2: "Final", 4: "Semifinal", 8: "Quarterfinal"}
    return names.get(field_size, f"Round of {field_size}")


def bracket_rounds(entrant_count: int, promotion_slots: int) -> int:
    """Number of knockout rounds needed to go from entrant_count teams down to promotion_slots winners."""
    if promotion_slots < 1 or entrant_count < 2 * promotion_slots or entrant_count % promotion_slots:
        raise InvalidPlayoffBracketError(
            f"{entrant_count} entrants cannot produce {promotion_slots} playoff winners",
            entrant_count=entrant_count,
            playoff_promotion_slots=promotion_slots,
        )
    ratio = entrant_count // promotion_slots
    if ratio & (ratio - 1):
        raise InvalidPlayoffBracketError(
            f"{entrant_count} entrants is not {promotion_slots} x a power of two",
            entrant_count=entrant_count,
            playoff_promotion_slots=promotion_slots,
        )
    return ratio.bit_length() - 1


def first_round_pairs(entrants: Sequence[Entrant]) -> List[tuple]:
    """Seed i vs seed n+1-i; each pair is (better seed, worse seed)."""
    n = len(entrants)
    return [(entrants[i], entrants[n - 1 - i]) for i in range(n // 2)]


def resolve_tie(legs: Sequence[LegResult]) -> TieOutcome:
    """
    Decide a tie from its finished legs (last leg is the deciding one).
    Raises PlayoffDrawNotAllowedError when nothing separates the two teams.
    """
    legs = sorted(legs, key=lambda leg: leg.leg)
    team_a, team_b = legs[0].home_team_id, legs[0].away_team_id

    aggregate = {team_a: 0, team_b: 0}
    away_goals = {team_a: 0, team_b: 0}
    for leg in legs:
        aggregate[leg.home_team_id] += leg.home_goals
        aggregate[leg.away_team_id] += leg.away_goals
        away_goals[leg.away_team_id] += leg.away_goals

    def outcome(winner, decided_by):
        loser = team_b if winner == team_a else team_a
        return TieOutcome(winner_team_id=winner, loser_team_id=loser, decided_by=decided_by)

    if aggregate[team_a] != aggregate[team_b]:
        return outcome(team_a if aggregate[team_a] > aggregate[team_b] else team_b, "aggregate")

    if len(legs) > 1 and away_goals[team_a] != away_goals[team_b]:
        return outcome(team_a if away_goals[team_a] > away_goals[team_b] else team_b, "away-goals")

    deciding = legs[-1]
    if (deciding.home_penalties is not None and deciding.away_penalties is not None
            and deciding.home_penalties != deciding.away_penalties):
        winner = deciding.home_team_id if deciding.home_penalties > deciding.away_penalties else deciding.away_team_id
        return outcome(winner, "penalties")

    raise PlayoffDrawNotAllowedError(
        f"Tie between {team_a} and {team_b} is level after {len(legs)} leg(s) and needs a decisive shoot-out",
        home_team_id=deciding.home_team_id,
        away_team_id=deciding.away_team_id,
        aggregate=aggregate,
    )


def playoff_fixture_key(stage: int, tie: int, leg: int) -> str:
    return f"P:{stage}:{tie}:{leg}"


class PlayoffService:
    def __init__(self, db: Session):
        self.db = db
        self.division_service = DivisionService(db)
        self.league_service = LeagueService(db)
        self.season_service = SeasonService(db)
        self.standing_service = StandingService(db)
        self.team_service = TeamService(db)

    # Queries

    def _division_matches(self, division_id: str, season_id: str, is_playoff: bool):
        return (
            self.db.query(Match)
            .join(League, Match.league_id == League.league_id)
            .filter(
                League.division_id == division_id,
                Match.season_id == season_id,
                Match.is_playoff.is_(is_playoff),
            )
        )

    def has_playoffs(self, division_id: str, season_id: str) -> bool:
        return self._division_matches(division_id, season_id, True).first() is not None

    def get_playoff_matches(self, division_id: str, season_id: str) -> List[Match]:
        return (
            self._division_matches(division_id, season_id, True)
            .order_by(Match.playoff_stage, Match.playoff_tie, Match.playoff_leg)
            .all()
        )

    def regular_season_counts(self, division_id: str, season_id: str) -> dict:
        """
        Regular-season progress of a division. A league stays open while it has unfinished
        matches, or while it has teams assigned but no schedule.
        """
        rows = (
            self._division_matches(division_id, season_id, False)
            .with_entities(Match.league_id, Match.status, func.count(Match.match_id))
            .group_by(Match.league_id, Match.status)
            .all()
        )
        scheduled, unfinished = {}, {}
        for league_id, status, count in rows:
            scheduled[league_id] = scheduled.get(league_id, 0) + count
            if status in UNFINISHED_STATUSES:
                unfinished[league_id] = unfinished.get(league_id, 0) + count

        assigned = {
            league_id for (league_id,) in (
                self.db.query(TeamLeagueAssignment.league_id)
                .join(League, TeamLeagueAssignment.league_id == League.league_id)
                .filter(League.division_id == division_id, TeamLeagueAssignment.season_id == season_id)
                .distinct()
            )
        }
        return {
            "total": sum(scheduled.values()),
            "unfinished": sum(unfinished.values()),
            "unscheduled_league_ids": sorted(assigned - set(scheduled)),
            "unfinished_league_ids": sorted(unfinished),
        }

    @staticmethod
    def regular_season_done(counts: dict) -> bool:
        return counts["total"] > 0 and not counts["unscheduled_league_ids"] and not counts["unfinished"]

    @staticmethod
    def open_league_ids(counts: dict) -> List[str]:
        return sorted(set(counts["unscheduled_league_ids"]) | set(counts["unfinished_league_ids"]))

    def _tie_matches(self, division_id: str, season_id: str, stage: int, tie: int) -> List[Match]:
        return (
            self._division_matches(division_id, season_id, True)
            .filter(Match.playoff_stage == stage, Match.playoff_tie == tie)
            .order_by(Match.playoff_leg)
            .all()
        )

    def _stages(self, matches: Sequence[Match]) -> Dict[int, Dict[int, List[Match]]]:
        stages = {}
        for match in matches:
            stages.setdefault(match.playoff_stage, {}).setdefault(match.playoff_tie, []).append(match)
        return stages

    def _decide_stage(self, ties: Dict[int, List[Match]]) -> Optional[List[Entrant]]:
        """Winners of a stage ordered by tie index, or None while any tie is still open."""
        winners = []
        for tie_index in sorted(ties):
            legs = ties[tie_index]
            if any(leg.status != MatchStatus.FINISHED.value for leg in legs):
                return None
            outcome = resolve_tie([LegResult.from_match(leg) for leg in legs])

            seeds = {}
            for leg in legs:
                seeds[leg.home_team_id] = leg.home_seed
                seeds[leg.away_team_id] = leg.away_seed
            winners.append(Entrant(
                team_id=outcome.winner_team_id,
                seed=seeds[outcome.winner_team_id],
                league_id=legs[0].league_id,
            ))
        return winners

    # Bracket construction

    def _entrants(self, division, season_id: str, leagues: Sequence[League]) -> List[Entrant]:
        """Playoff slice of every league, seeded across the division (standings refreshed first)."""
        first = division.promote_slots + 1
        last = division.promote_slots + division.promote_playoff_slots

        candidates = []
        for league in leagues:
            standings = self.standing_service._recompute(season_id, league.league_id)
            candidates.extend(
                (standing, league.league_id) for standing in standings if first <= standing.position <= last
            )

        followers = self.team_service.get_followers(standing.team_id for standing, _ in candidates)
        candidates.sort(key=lambda item: (
            item[0].position,
            -item[0].points,
            -item[0].goal_difference,
            -item[0].goals_for,
            -followers.get(item[0].team_id, 0),
            item[0].team_id,
        ))
        return [
            Entrant(team_id=standing.team_id, seed=seed, league_id=league_id)
            for seed, (standing, league_id) in enumerate(candidates, start=1)
        ]

    def _next_slot(self, division_id: str, season_id: str):
        """Matchday and date following everything already scheduled in the division."""
        row = (
            self.db.query(func.max(Match.matchday), func.max(Match.scheduled_date))
            .join(League, Match.league_id == League.league_id)
            .filter(League.division_id == division_id, Match.season_id == season_id)
            .one()
        )
        last_matchday, last_date = row
        return (last_matchday or 0) + 1, last_date + timedelta(days=settings.PLAYOFF_DAYS_BETWEEN_ROUNDS)

    def _create_stage(self, division, season_id: str, stage: int, pairs: Sequence[tuple]) -> List[Match]:
        """Stage the matches of one knockout round (no commit)."""
        is_final_stage = len(pairs) == division.playoff_promotion_slots
        two_legged = division.two_legged_final if is_final_stage else division.two_legged_ties
        name = round_name(2 * len(pairs))
        matchday, first_date = self._next_slot(division.division_id, season_id)

        fixtures = []
        for tie_index, (better, worse) in enumerate(pairs, start=1):
            if two_legged:
                legs = [(1, worse, better), (2, better, worse)]
            else:
                legs = [(1, better, worse)]
            for leg, home, away in legs:
                fixtures.append((tie_index, leg, home, away, better.league_id))

        ids = generate_custom_ids(self.db, Match, "M", "match_id", len(fixtures))
        matches = []
        for match_id, (tie_index, leg, home, away, league_id) in zip(ids, fixtures):
            matches.append(Match(
                match_id=match_id,
                season_id=season_id,
                league_id=league_id,
                home_team_id=home.team_id,
                away_team_id=away.team_id,
                matchday=matchday + leg - 1,
                scheduled_date=first_date + timedelta(days=(leg - 1) * settings.PLAYOFF_DAYS_BETWEEN_ROUNDS),
                status=MatchStatus.SCHEDULED.value,
                is_playoff=True,
                playoff_round=name,
                playoff_stage=stage,
                playoff_tie=tie_index,
                playoff_leg=leg,
                home_seed=home.seed,
                away_seed=away.seed,
                fixture_key=playoff_fixture_key(stage, tie_index, leg),
            ))
        self.db.add_all(matches)
        self.db.flush()

        logger.info(
            f"✅ {name} created for division {division.division_id}: {len(pairs)} ties, {len(matches)} matches"
        )
        return matches

    def organize_playoffs(self, division_id: str, season_id: str) -> Union[List[Match], PlayoffsNotReady]:
        """Create the first playoff round for a division whose regular season is over."""
        try:
            division = self.division_service.get_division(division_id)
            self.season_service.get_season(season_id)

            if not division.promote_playoff_slots:
                return []

            leagues = self.league_service.get_leagues_in_division(division_id)
            league_ids = [league.league_id for league in leagues]
            if not leagues:
                return PlayoffsNotReady(division_id, season_id, reason="no-leagues")

            counts = self.regular_season_counts(division_id, season_id)
            if counts["total"] == 0:
                return PlayoffsNotReady(division_id, season_id, reason="no-schedule", league_ids=league_ids)
            if counts["unscheduled_league_ids"]:
                logger.info(f"⚠️ Division {division_id} has leagues without a schedule: {counts['unscheduled_league_ids']}")
                return PlayoffsNotReady(
                    division_id, season_id,
                    reason="no-schedule",
                    unfinished_matches=counts["unfinished"],
                    league_ids=counts["unscheduled_league_ids"],
                )
            if counts["unfinished"]:
                logger.info(f"⚠️ Division {division_id} still has {counts['unfinished']} regular matches to play")
                return PlayoffsNotReady(
                    division_id, season_id,
                    reason="unfinished-matches",
                    unfinished_matches=counts["unfinished"],
                    league_ids=counts["unfinished_league_ids"],
                )

            if self.has_playoffs(division_id, season_id):
                raise AlreadyGeneratedError(
                    f"Playoffs already organized for division {division_id} in season {season_id}",
                    division_id=division_id,
                    season_id=season_id,
                )

            entrants = self._entrants(division, season_id, leagues)
            bracket_rounds(len(entrants), division.playoff_promotion_slots)

            matches = self._create_stage(division, season_id, 1, first_round_pairs(entrants))
            self.db.commit()
            return matches
        except Exception:
            self.db.rollback()
            raise

    # Results

    def validate_playoff_result(self, match: Match, home_goals: int, away_goals: int,
                                home_penalties: Optional[int] = None, away_penalties: Optional[int] = None):
        """
        Check a playoff result before it is stored. First legs may be drawn; a deciding
        match must leave the tie decided, using the shoot-out only when goals cannot.
        """
        has_penalties = home_penalties is not None or away_penalties is not None
        if has_penalties and (home_penalties is None or away_penalties is None):
            raise ValueError("Both home_penalties and away_penalties are required for a shoot-out")
        if has_penalties and min(home_penalties, away_penalties) < 0:
            raise ValueError("Penalty counts must be non-negative")

        division = self.league_service.get_division_for_league(match.league_id)
        later_stage = (
            self._division_matches(division.division_id, match.season_id, True)
            .filter(Match.playoff_stage > match.playoff_stage)
            .first()
        )
        if later_stage:
            raise ValueError(f"Match {match.match_id} belongs to a round that has already been advanced")

        legs = self._tie_matches(division.division_id, match.season_id, match.playoff_stage, match.playoff_tie)
        deciding = max(legs, key=lambda leg: leg.playoff_leg)

        if match.playoff_leg != deciding.playoff_leg:
            if deciding.status == MatchStatus.FINISHED.value:
                raise ValueError(
                    f"Match {match.match_id} belongs to a tie already decided by match {deciding.match_id}"
                )
            if has_penalties:
                raise ValueError(f"Match {match.match_id} is a first leg; a shoot-out only follows the deciding match")
            return

        previous = []
        for leg in legs:
            if leg.match_id == match.match_id:
                continue
            if leg.status != MatchStatus.FINISHED.value:
                raise ValueError(f"Leg {leg.playoff_leg} of this tie must be finished before match {match.match_id}")
            previous.append(LegResult.from_match(leg))

        candidate = LegResult(
            home_team_id=match.home_team_id,
            away_team_id=match.away_team_id,
            home_goals=home_goals,
            away_goals=away_goals,
            leg=match.playoff_leg,
        )
        level_on_goals = False
        try:
            resolve_tie(previous + [candidate])
        except PlayoffDrawNotAllowedError:
            level_on_goals = True

        if not level_on_goals:
            if has_penalties:
                raise ValueError(f"Match {match.match_id} decides the tie on goals; no shoot-out is needed")
            return

        candidate.home_penalties = home_penalties
        candidate.away_penalties = away_penalties
        try:
            resolve_tie(previous + [candidate])
        except PlayoffDrawNotAllowedError as e:
            e.details.update(match_id=match.match_id, division_id=division.division_id, season_id=match.season_id)
            raise

    def advance_bracket(self, division_id: str, season_id: str) -> List[Match]:
        """
        Create the next round once every tie of the latest round is decided (no commit).
        Returns the new matches, or [] when the round is still open or the bracket is done.
        """
        division = self.division_service.get_division(division_id)
        stages = self._stages(self.get_playoff_matches(division_id, season_id))
        if not stages:
            return []

        latest = max(stages)
        winners = self._decide_stage(stages[latest])
        if winners is None or len(winners) <= division.playoff_promotion_slots:
            return []

        k = len(winners)
        pairs = []
        for i in range(k // 2):
            a, b = winners[i], winners[k - 1 - i]
            pairs.append((a, b) if a.seed < b.seed else (b, a))

        logger.info(f"🔁 Advancing playoffs of division {division_id} to stage {latest + 1}")
        return self._create_stage(division, season_id, latest + 1, pairs)

    # State

    def get_playoff_winners(self, division_id: str, season_id: str) -> List[dict]:
        """Decided winners of the final round, empty until the bracket is complete."""
        division = self.division_service.get_division(division_id)
        matches = self.get_playoff_matches(division_id, season_id)
        stages = self._stages(matches)
        if not stages:
            return []

        latest = max(stages)
        winners = self._decide_stage(stages[latest])
        if winners is None or len(winners) != division.playoff_promotion_slots:
            return []

        round_label = stages[latest][min(stages[latest])][0].playoff_round
        return [
            {"team_id": winner.team_id, "seed": winner.seed, "league_id": winner.league_id, "round": round_label}
            for winner in winners
        ]

    def get_playoff_phase(self, division_id: str, season_id: str) -> PlayoffPhase:
        division = self.division_service.get_division(division_id)
        counts = self.regular_season_counts(division_id, season_id)
        regular_done = self.regular_season_done(counts)

        if not division.promote_playoff_slots:
            return PlayoffPhase.COMPLETE if regular_done else PlayoffPhase.REGULAR_SEASON
        if not regular_done:
            return PlayoffPhase.REGULAR_SEASON
        if not self.has_playoffs(division_id, season_id):
            return PlayoffPhase.PLAYOFFS_PENDING
        if self.get_playoff_winners(division_id, season_id):
            return PlayoffPhase.PLAYOFFS_COMPLETE
        return PlayoffPhase.PLAYOFFS_IN_PROGRESS

    def get_playoff_status(self, division_id: str, season_id: str) -> dict:
        matches = self.get_playoff_matches(division_id, season_id)
        return {
            "division_id": division_id,
            "season_id": season_id,
            "phase": self.get_playoff_phase(division_id, season_id).value,
            "matches": [match.to_dict() for match in matches],
            "winners": self.get_playoff_winners(division_id, season_id),
        }
