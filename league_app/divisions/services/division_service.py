import logging
from typing import List
from sqlalchemy.orm import Session
from league_app.divisions.models.division_model import Division
from league_app.leagues.models.leagues_models import League
from league_app.core.exceptions import NotFoundError
from league_app.core.utils import generate_custom_id

logger = logging.getLogger(__name__)

GROUP_CODES = ["A", "B", "C", "D", "E", "F", "G", "H"]

# Five-level pyramid; slot counts are per league
DEFAULT_STRUCTURE = [
    {
        "level": 1, "name": "Division 1", "description": "Top flight",
        "total_leagues": 1, "teams_per_league": 20,
        "promote_slots": 0, "promote_playoff_slots": 0, "relegate_slots": 3, "tournament_slots": 7,
    },
    {
        "level": 2, "name": "Division 2", "description": "Second tier",
        "total_leagues": 1, "teams_per_league": 20,
        "promote_slots": 2, "promote_playoff_slots": 4, "relegate_slots": 3, "tournament_slots": 0,
        "playoff_promotion_slots": 1,
    },
    {
        "level": 3, "name": "Division 3", "description": "Third tier",
        "total_leagues": 2, "teams_per_league": 20,
        "promote_slots": 1, "promote_playoff_slots": 2, "relegate_slots": 3, "tournament_slots": 0,
        "playoff_promotion_slots": 1,
    },
    {
        "level": 4, "name": "Division 4", "description": "Fourth tier",
        "total_leagues": 4, "teams_per_league": 20,
        "promote_slots": 1, "promote_playoff_slots": 1, "relegate_slots": 3, "tournament_slots": 0,
        "playoff_promotion_slots": 2,
    },
    {
        "level": 5, "name": "Division 5", "description": "Fifth tier",
        "total_leagues": 8, "teams_per_league": 20,
        "promote_slots": 1, "promote_playoff_slots": 1, "relegate_slots": 0, "tournament_slots": 0,
        "playoff_promotion_slots": 4,
    },
]

DIVISION_FIELDS = (
    "name", "description", "total_leagues", "teams_per_league", "promote_slots",
    "promote_playoff_slots", "relegate_slots", "tournament_slots", "playoff_promotion_slots",
    "two_legged_ties", "two_legged_final",
)


def validate_division_config(config: dict):
    """Reject slot layouts that cannot fit in a league."""
    teams = config.get("teams_per_league", 20)
    promote = config.get("promote_slots", 0)
    playoff = config.get("promote_playoff_slots", 0)
    relegate = config.get("relegate_slots", 0)
    leagues = config.get("total_leagues", 1)

    if teams < 2:
        raise ValueError(f"teams_per_league must be >= 2, got {teams}")
    if not 1 <= leagues <= len(GROUP_CODES):
        raise ValueError(f"total_leagues must be between 1 and {len(GROUP_CODES)}, got {leagues}")
    if min(promote, playoff, relegate, config.get("tournament_slots", 0)) < 0:
        raise ValueError("Slot counts must be non-negative")
    if promote + playoff > teams:
        raise ValueError(f"promote_slots + promote_playoff_slots ({promote + playoff}) exceeds teams_per_league ({teams})")
    if relegate > teams:
        raise ValueError(f"relegate_slots ({relegate}) exceeds teams_per_league ({teams})")
    if config.get("playoff_promotion_slots", 1) < 1:
        raise ValueError("playoff_promotion_slots must be >= 1")


class DivisionService:
    def __init__(self, db: Session):
        self.db = db

    def get_division(self, division_id: str) -> Division:
        division = self.db.query(Division).filter(Division.division_id == division_id).first()
        if not division:
            raise NotFoundError(f"Division {division_id} not found", division_id=division_id)
        return division

    def get_division_by_level(self, level: int):
        return self.db.query(Division).filter(Division.level == level).first()

    def get_all_divisions(self) -> List[Division]:
        return self.db.query(Division).order_by(Division.level).all()

    def get_lowest_division(self):
        return self.db.query(Division).order_by(Division.level.desc()).first()

    def initialize_league_system(self, structure=None) -> List[Division]:
        """Create or update divisions by level and create their leagues (group A, B, ...)."""
        structure = structure if structure is not None else DEFAULT_STRUCTURE
        try:
            divisions = [self._upsert_division(config) for config in structure]
            self.db.commit()
            logger.info(f"✅ League system initialized with {len(divisions)} divisions")
            return divisions
        except Exception:
            self.db.rollback()
            raise

    def _upsert_division(self, config: dict) -> Division:
        validate_division_config(config)

        division = self.get_division_by_level(config["level"])
        if not division:
            division = Division(
                division_id=generate_custom_id(self.db, Division, "D", "division_id"),
                level=config["level"],
            )
            self.db.add(division)

        for field in DIVISION_FIELDS:
            if field in config:
                setattr(division, field, config[field])
        self.db.flush()

        existing_codes = {
            league.group_code
            for league in self.db.query(League).filter(League.division_id == division.division_id)
        }

        for i in range(division.total_leagues):
            group_code = GROUP_CODES[i]
            if group_code in existing_codes:
                continue

            league_name = division.name if division.total_leagues == 1 else f"{division.name} - Group {group_code}"
            self.db.add(League(
                league_id=generate_custom_id(self.db, League, "L", "league_id"),
                name=league_name,
                group_code=group_code,
                division_id=division.division_id,
                max_teams=division.teams_per_league,
            ))
            self.db.flush()

        return division
