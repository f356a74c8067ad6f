from sqlalchemy import Column, String, Integer
from sqlalchemy.orm import relationship
from league_app.core.database import Base


class Team(Base):
    __tablename__ = "teams"

    team_id = Column(String, primary_key=True, index=True)
    team_name = Column(String, unique=True, nullable=False)
    followers = Column(Integer, nullable=False, default=0)  # popularity metric used for ranking

    home_matches = relationship("Match", foreign_keys="[Match.home_team_id]", back_populates="home_team")
    away_matches = relationship("Match", foreign_keys="[Match.away_team_id]", back_populates="away_team")

    # Define reverse relationship for Standing
    standings = relationship("Standing", back_populates="team")
    assignments = relationship("TeamLeagueAssignment", back_populates="team")
