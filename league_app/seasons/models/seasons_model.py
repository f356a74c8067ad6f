from sqlalchemy import Column, String, Integer, Boolean, Date, Index, text
from sqlalchemy.orm import relationship
from league_app.core.database import Base


class Season(Base):
    __tablename__ = "seasons"
    __table_args__ = (
        # At most one active season system-wide
        Index(
            "uq_seasons_single_active",
            "is_active",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    season_id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    start_date = Column(Date)
    end_date = Column(Date)
    is_active = Column(Boolean, nullable=False, default=False)
    is_completed = Column(Boolean, nullable=False, default=False)

    matches = relationship("Match", back_populates="season")
    standings = relationship("Standing", back_populates="season")
    assignments = relationship("TeamLeagueAssignment", back_populates="season")
