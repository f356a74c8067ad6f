from typing import Dict, Iterable, List
from sqlalchemy.orm import Session
from league_app.teams.models.team_model import Team
from league_app.core.utils import generate_custom_id


class TeamService:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create_team(self, team_name: str, followers: int = 0) -> Team:
        """Retrieve a team by exact name or create it (no commit)."""
        if followers < 0:
            raise ValueError(f"followers must be >= 0, got {followers}")

        team = self.db.query(Team).filter(Team.team_name == team_name).first()
        if team:
            return team

        new_id = generate_custom_id(self.db, Team, "T", "team_id")
        team = Team(team_id=new_id, team_name=team_name, followers=followers)
        self.db.add(team)
        self.db.flush()
        return team

    def create_teams(self, teams: Iterable[dict]) -> List[Team]:
        """Create several teams in one transaction: [{"team_name": ..., "followers": ...}]."""
        try:
            created = [
                self.get_or_create_team(team["team_name"], team.get("followers", 0))
                for team in teams
            ]
            self.db.commit()
            return created
        except Exception:
            self.db.rollback()
            raise

    def get_followers(self, team_ids: Iterable[str]) -> Dict[str, int]:
        team_ids = list(team_ids)
        if not team_ids:
            return {}
        rows = self.db.query(Team.team_id, Team.followers).filter(Team.team_id.in_(team_ids)).all()
        return {row.team_id: row.followers or 0 for row in rows}

    def rank_by_followers(self, team_ids: Iterable[str]) -> List[str]:
        """Order team ids by popularity (followers desc, then id) for ranking-based placement."""
        followers = self.get_followers(team_ids)
        return sorted(followers, key=lambda team_id: (-followers[team_id], team_id))

    def get_all_ranked(self) -> List[Team]:
        return self.db.query(Team).order_by(Team.followers.desc(), Team.team_id).all()
