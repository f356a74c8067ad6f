from typing import List
from sqlalchemy.orm import Session
from league_app.leagues.models.leagues_models import League
from league_app.divisions.models.division_model import Division
from league_app.core.exceptions import NotFoundError


class LeagueService:
    def __init__(self, db: Session):
        self.db = db

    def get_league(self, league_id: str, lock: bool = False) -> League:
        query = self.db.query(League).filter(League.league_id == league_id)
        if lock:
            query = query.with_for_update()
        league = query.first()
        if not league:
            raise NotFoundError(f"League {league_id} not found", league_id=league_id)
        return league

    def get_division_for_league(self, league_id: str) -> Division:
        league = self.get_league(league_id)
        return self.db.query(Division).filter(Division.division_id == league.division_id).one()

    def get_leagues_in_division(self, division_id: str) -> List[League]:
        return (
            self.db.query(League)
            .filter(League.division_id == division_id)
            .order_by(League.group_code)
            .all()
        )
