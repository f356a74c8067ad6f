import enum
from datetime import datetime
from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from league_app.core.database import Base


class AssignmentReason(str, enum.Enum):
    INITIAL_RANKING = "initial-ranking"
    PROMOTION = "promotion"
    RELEGATION = "relegation"
    PLAYOFF_WIN = "playoff-win"
    FALLBACK = "fallback"


class TeamLeagueAssignment(Base):
    __tablename__ = "team_league_assignments"
    __table_args__ = (
        UniqueConstraint("team_id", "season_id", name="uq_assignment_team_season"),
    )

    assignment_id = Column(String, primary_key=True, index=True)
    team_id = Column(String, ForeignKey("teams.team_id"), nullable=False)
    league_id = Column(String, ForeignKey("leagues.league_id"), nullable=False)
    season_id = Column(String, ForeignKey("seasons.season_id"), nullable=False)

    assignment_reason = Column(
        Enum(AssignmentReason, values_callable=lambda reasons: [r.value for r in reasons]),
        nullable=False,
        default=AssignmentReason.INITIAL_RANKING,
    )
    ranking_metric_at_assignment = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    team = relationship("Team", back_populates="assignments")
    league = relationship("League", back_populates="assignments")
    season = relationship("Season", back_populates="assignments")
