from sqlalchemy import Column, String, Integer, Boolean, Text, CheckConstraint
from sqlalchemy.orm import relationship
from league_app.core.database import Base


class Division(Base):
    __tablename__ = "divisions"
    __table_args__ = (
        CheckConstraint("promote_slots + promote_playoff_slots <= teams_per_league", name="ck_division_promotion_fits"),
        CheckConstraint("relegate_slots <= teams_per_league", name="ck_division_relegation_fits"),
    )

    division_id = Column(String, primary_key=True, index=True)
    level = Column(Integer, unique=True, nullable=False)  # 1 = top flight
    name = Column(String, nullable=False)
    description = Column(Text)
    total_leagues = Column(Integer, nullable=False, default=1)
    teams_per_league = Column(Integer, nullable=False, default=20)

    # Slot counts apply to every league of the division
    promote_slots = Column(Integer, nullable=False, default=0)
    promote_playoff_slots = Column(Integer, nullable=False, default=0)
    relegate_slots = Column(Integer, nullable=False, default=0)
    tournament_slots = Column(Integer, nullable=False, default=0)

    # Playoff bracket shape
    playoff_promotion_slots = Column(Integer, nullable=False, default=1)
    two_legged_ties = Column(Boolean, nullable=False, default=False)
    two_legged_final = Column(Boolean, nullable=False, default=False)

    leagues = relationship("League", back_populates="division", order_by="League.group_code")
