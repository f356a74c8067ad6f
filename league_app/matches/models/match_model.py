import enum
from sqlalchemy import (
    Column, String, Integer, ForeignKey, Date, Boolean, CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from league_app.core.database import Base


class MatchStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"


# Statuses that still owe a result
UNFINISHED_STATUSES = (MatchStatus.SCHEDULED.value, MatchStatus.LIVE.value, MatchStatus.POSTPONED.value)


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        CheckConstraint("home_team_id <> away_team_id", name="ck_match_distinct_teams"),
        # Second safety net against double generation
        UniqueConstraint("season_id", "league_id", "fixture_key", name="uq_match_fixture"),
        Index("ix_matches_season_league", "season_id", "league_id"),
    )

    match_id = Column(String, primary_key=True, index=True)
    season_id = Column(String, ForeignKey("seasons.season_id"), nullable=False)
    league_id = Column(String, ForeignKey("leagues.league_id"), nullable=False)
    home_team_id = Column(String, ForeignKey("teams.team_id"), nullable=False)
    away_team_id = Column(String, ForeignKey("teams.team_id"), nullable=False)

    matchday = Column(Integer, nullable=False)
    scheduled_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default=MatchStatus.SCHEDULED.value)

    home_goals = Column(Integer)  # None = not played yet
    away_goals = Column(Integer)

    is_playoff = Column(Boolean, nullable=False, default=False)
    playoff_round = Column(String)        # "Semifinal", "Final", ...
    playoff_stage = Column(Integer)       # 1 = first playoff round
    playoff_tie = Column(Integer)         # tie index inside the stage
    playoff_leg = Column(Integer)         # 1 or 2
    home_seed = Column(Integer)
    away_seed = Column(Integer)
    home_penalties = Column(Integer)      # shoot-out, deciding playoff match only
    away_penalties = Column(Integer)

    fixture_key = Column(String, nullable=False)

    league = relationship("League", back_populates="matches")
    season = relationship("Season", back_populates="matches")
    home_team = relationship("Team", foreign_keys=[home_team_id], back_populates="home_matches")
    away_team = relationship("Team", foreign_keys=[away_team_id], back_populates="away_matches")

    def to_dict(self):
        return {
            "match_id": self.match_id,
            "season_id": self.season_id,
            "league_id": self.league_id,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "matchday": self.matchday,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "status": self.status,
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
            "is_playoff": self.is_playoff,
            "playoff_round": self.playoff_round,
            "playoff_stage": self.playoff_stage,
            "playoff_tie": self.playoff_tie,
            "playoff_leg": self.playoff_leg,
            "home_penalties": self.home_penalties,
            "away_penalties": self.away_penalties,
        }
