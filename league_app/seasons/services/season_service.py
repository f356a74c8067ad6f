import logging
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session
from league_app.seasons.models.seasons_model import Season
from league_app.core.exceptions import NotFoundError
from league_app.core.utils import generate_custom_id

logger = logging.getLogger(__name__)


class SeasonService:
    def __init__(self, db: Session):
        self.db = db

    def get_season(self, season_id: str, lock: bool = False) -> Season:
        query = self.db.query(Season).filter(Season.season_id == season_id)
        if lock:
            query = query.with_for_update()
        season = query.first()
        if not season:
            raise NotFoundError(f"Season {season_id} not found", season_id=season_id)
        return season

    def get_active_season(self) -> Optional[Season]:
        return self.db.query(Season).filter(Season.is_active.is_(True)).first()

    def create_season(self, year: int, name: Optional[str] = None, activate: bool = False,
                      start_date: Optional[date] = None) -> Season:
        """
        Add a season row (no commit). Activating it deactivates the current active season first,
        flushing the swap so the single-active index never sees two active rows.
        """
        if activate:
            current = self.get_active_season()
            if current:
                current.is_active = False
                self.db.flush()

        season = Season(
            season_id=generate_custom_id(self.db, Season, "S", "season_id"),
            name=name or self.season_name(year),
            year=year,
            start_date=start_date,
            is_active=activate,
            is_completed=False,
        )
        self.db.add(season)
        self.db.flush()
        logger.info(f"✅ Season {season.season_id} ({season.name}) created, active={activate}")
        return season

    def start_season(self, year: int, name: Optional[str] = None, start_date: Optional[date] = None) -> Season:
        """Create and activate a season in its own transaction."""
        try:
            season = self.create_season(year, name=name, activate=True, start_date=start_date)
            self.db.commit()
            self.db.refresh(season)
            return season
        except Exception:
            self.db.rollback()
            raise

    def season_name(self, year: int) -> str:
        """Football seasons span two calendar years: 2024 -> "2024/2025"."""
        if year < 1:
            raise ValueError(f"Invalid season year: {year}")
        return f"{year}/{year + 1}"
