from sqlalchemy import Column, String, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from league_app.core.database import Base


class League(Base):
    __tablename__ = "leagues"
    __table_args__ = (
        UniqueConstraint("division_id", "group_code", name="uq_league_division_group"),
    )

    league_id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    group_code = Column(String, nullable=False)  # "A", "B", ...
    division_id = Column(String, ForeignKey("divisions.division_id"), nullable=False)
    max_teams = Column(Integer, nullable=False, default=20)

    division = relationship("Division", back_populates="leagues")
    matches = relationship("Match", back_populates="league")
    standings = relationship("Standing", back_populates="league")
    assignments = relationship("TeamLeagueAssignment", back_populates="league")
