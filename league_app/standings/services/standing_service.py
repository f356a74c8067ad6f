"""
Standings Engine.

A league table is a pure projection of the finished regular matches of one
(season, league): it is rebuilt from scratch on every recompute, never patched.

Ordering, strictly total:
    1. points
    2. head-to-head among the exact set of teams tied on points
       (goal difference, then goals scored, in matches among that set;
       sub-groups left tied are re-evaluated on their own matches)
    3. overall goal difference
    4. overall goals scored
    5. followers, then team id
"""
import logging
from datetime import datetime
from itertools import groupby
from typing import Dict, Iterable, List, Sequence
from sqlalchemy.orm import Session
from league_app.standings.models.standings_model import Standing
from league_app.matches.models.match_model import Match, MatchStatus
from league_app.divisions.models.division_model import Division
from league_app.leagues.services.league_service import LeagueService
from league_app.teams.services.team_service import TeamService
from league_app.assignments.services.team_assignment_service import TeamAssignmentService
from league_app.core.exceptions import CorruptMatchDataError
from league_app.core.utils import generate_custom_ids

logger = logging.getLogger(__name__)

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1

ZONE_PROMOTES = "PROMOTES"
ZONE_PLAYOFF = "PLAYOFF"
ZONE_RELEGATES = "RELEGATES"
ZONE_TOURNAMENT = "TOURNAMENT"
ZONE_SAFE = "SAFE"


def check_match_goals(match):
    """Finished matches must carry non-negative goals on both sides."""
    for side in ("home_goals", "away_goals"):
        goals = getattr(match, side)
        if goals is None or goals < 0:
            raise CorruptMatchDataError(
                f"Finished match {match.match_id} has invalid {side}: {goals}",
                match_id=match.match_id,
                season_id=match.season_id,
                league_id=match.league_id,
                field=side,
                value=goals,
            )


def _empty_row(team_id: str) -> dict:
    return {
        "team_id": team_id,
        "played": 0, "won": 0, "drawn": 0, "lost": 0,
        "goals_for": 0, "goals_against": 0, "goal_difference": 0, "points": 0,
    }


def _tally(team_ids: Iterable[str], matches: Sequence) -> Dict[str, dict]:
    rows = {team_id: _empty_row(team_id) for team_id in team_ids}
    for match in matches:
        home = rows.setdefault(match.home_team_id, _empty_row(match.home_team_id))
        away = rows.setdefault(match.away_team_id, _empty_row(match.away_team_id))

        for row, scored, conceded in ((home, match.home_goals, match.away_goals),
                                      (away, match.away_goals, match.home_goals)):
            row["played"] += 1
            row["goals_for"] += scored
            row["goals_against"] += conceded
            if scored > conceded:
                row["won"] += 1
                row["points"] += POINTS_FOR_WIN
            elif scored == conceded:
                row["drawn"] += 1
                row["points"] += POINTS_FOR_DRAW
            else:
                row["lost"] += 1

    for row in rows.values():
        row["goal_difference"] = row["goals_for"] - row["goals_against"]
    return rows


def _order_tied(group: List[str], rows: Dict[str, dict], matches: Sequence,
                followers: Dict[str, int]) -> List[str]:
    if len(group) == 1:
        return group

    members = set(group)
    h2h_matches = [m for m in matches if m.home_team_id in members and m.away_team_id in members]
    if h2h_matches:
        h2h = _tally(group, h2h_matches)

        def h2h_key(team_id):
            return (-h2h[team_id]["goal_difference"], -h2h[team_id]["goals_for"])

        ranked = sorted(group, key=h2h_key)
        buckets = [list(bucket) for _, bucket in groupby(ranked, key=h2h_key)]
        if len(buckets) > 1:
            ordered = []
            for bucket in buckets:
                ordered.extend(_order_tied(bucket, rows, matches, followers))
            return ordered

    return sorted(group, key=lambda team_id: (
        -rows[team_id]["goal_difference"],
        -rows[team_id]["goals_for"],
        -followers.get(team_id, 0),
        team_id,
    ))


def compute_table(team_ids: Iterable[str], matches: Sequence, followers: Dict[str, int]) -> List[dict]:
    """
    Build the ordered table for the given roster from finished regular matches.
    Teams without matches are listed with zeros. Rows carry a 1-based ``position``.
    """
    for match in matches:
        check_match_goals(match)

    rows = _tally(team_ids, matches)
    by_points = sorted(rows, key=lambda team_id: -rows[team_id]["points"])

    ordered = []
    for _, tied in groupby(by_points, key=lambda team_id: rows[team_id]["points"]):
        ordered.extend(_order_tied(list(tied), rows, matches, followers))

    table = []
    for position, team_id in enumerate(ordered, start=1):
        table.append({"position": position, **rows[team_id]})
    return table


def zone_for_position(position: int, table_size: int, division: Division, has_lower_division: bool) -> str:
    promote = division.promote_slots or 0
    playoff = division.promote_playoff_slots or 0

    if division.level > 1 and position <= promote:
        return ZONE_PROMOTES
    if division.level > 1 and position <= promote + playoff:
        return ZONE_PLAYOFF
    if division.level == 1 and position <= (division.tournament_slots or 0):
        return ZONE_TOURNAMENT
    if has_lower_division and position > table_size - (division.relegate_slots or 0):
        return ZONE_RELEGATES
    return ZONE_SAFE


class StandingService:
    def __init__(self, db: Session):
        self.db = db
        self.team_service = TeamService(db)
        self.league_service = LeagueService(db)
        self.assignment_service = TeamAssignmentService(db)

    def finished_regular_matches(self, season_id: str, league_id: str) -> List[Match]:
        return (
            self.db.query(Match)
            .filter(
                Match.season_id == season_id,
                Match.league_id == league_id,
                Match.is_playoff.is_(False),
                Match.status == MatchStatus.FINISHED.value,
            )
            .order_by(Match.matchday, Match.match_id)
            .all()
        )

    def league_roster(self, season_id: str, league_id: str) -> List[str]:
        """Assigned teams plus any team that shows up in the league's regular matches."""
        roster = list(self.assignment_service.get_league_team_ids(season_id, league_id))
        seen = set(roster)
        rows = (
            self.db.query(Match.home_team_id, Match.away_team_id)
            .filter(
                Match.season_id == season_id,
                Match.league_id == league_id,
                Match.is_playoff.is_(False),
            )
            .all()
        )
        for home_team_id, away_team_id in rows:
            for team_id in (home_team_id, away_team_id):
                if team_id not in seen:
                    seen.add(team_id)
                    roster.append(team_id)
        return roster

    def build_table(self, season_id: str, league_id: str) -> List[dict]:
        """Compute the table in memory without touching stored rows."""
        roster = self.league_roster(season_id, league_id)
        matches = self.finished_regular_matches(season_id, league_id)
        followers = self.team_service.get_followers(roster)
        return compute_table(roster, matches, followers)

    def _recompute(self, season_id: str, league_id: str) -> List[Standing]:
        """Replace the league's standing rows (no commit). Locks league and standing rows first."""
        self.league_service.get_league(league_id, lock=True)
        existing = (
            self.db.query(Standing)
            .filter(Standing.season_id == season_id, Standing.league_id == league_id)
            .with_for_update()
            .all()
        )

        table = self.build_table(season_id, league_id)

        for standing in existing:
            self.db.delete(standing)
        self.db.flush()

        now = datetime.utcnow()
        ids = generate_custom_ids(self.db, Standing, "ST", "standing_id", len(table))
        standings = [
            Standing(standing_id=standing_id, season_id=season_id, league_id=league_id, updated_at=now, **row)
            for standing_id, row in zip(ids, table)
        ]
        self.db.add_all(standings)
        self.db.flush()

        logger.info(f"🔁 Standings recomputed for league {league_id} in season {season_id} ({len(standings)} teams)")
        return standings

    def recompute(self, season_id: str, league_id: str) -> List[Standing]:
        try:
            standings = self._recompute(season_id, league_id)
            self.db.commit()
            return standings
        except Exception:
            self.db.rollback()
            raise

    def on_match_finished(self, match: Match) -> List[Standing]:
        """Incremental trigger: refresh the league of a just-finished regular match (no commit)."""
        if match.is_playoff:
            return []
        return self._recompute(match.season_id, match.league_id)

    def recompute_season(self, season_id: str) -> Dict[str, int]:
        """Recompute every league that has regular matches in the season."""
        try:
            league_ids = [
                row.league_id
                for row in self.db.query(Match.league_id)
                .filter(Match.season_id == season_id, Match.is_playoff.is_(False))
                .distinct()
                .order_by(Match.league_id)
            ]
            results = {league_id: len(self._recompute(season_id, league_id)) for league_id in league_ids}
            self.db.commit()
            logger.info(f"✅ Standings recomputed for {len(results)} leagues in season {season_id}")
            return results
        except Exception:
            self.db.rollback()
            raise

    def get_standings(self, season_id: str, league_id: str) -> dict:
        """Stored table with zones; falls back to an in-memory table when nothing was stored yet."""
        league = self.league_service.get_league(league_id)
        division = self.db.query(Division).filter(Division.division_id == league.division_id).one()
        has_lower_division = (
            self.db.query(Division.division_id).filter(Division.level == division.level + 1).first() is not None
        )

        stored = (
            self.db.query(Standing)
            .filter(Standing.season_id == season_id, Standing.league_id == league_id)
            .order_by(Standing.position)
            .all()
        )
        table = [standing.to_dict() for standing in stored] if stored else self.build_table(season_id, league_id)

        for row in table:
            row["zone"] = zone_for_position(row["position"], len(table), division, has_lower_division)

        return {
            "season_id": season_id,
            "league": {"league_id": league.league_id, "name": league.name, "group_code": league.group_code},
            "division": {"division_id": division.division_id, "level": division.level, "name": division.name},
            "standings": table,
        }
