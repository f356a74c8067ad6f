from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from league_app.core.database import get_db
from league_app.core.exceptions import LeagueError
from league_app.divisions.services.division_service import DivisionService
from league_app.seasons.services.season_service import SeasonService
from league_app.teams.services.team_service import TeamService
from league_app.assignments.services.team_assignment_service import TeamAssignmentService

router = APIRouter()


class DivisionConfig(BaseModel):
    level: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    total_leagues: int = Field(1, ge=1, le=8)
    teams_per_league: int = Field(20, ge=2)
    promote_slots: int = Field(0, ge=0)
    promote_playoff_slots: int = Field(0, ge=0)
    relegate_slots: int = Field(0, ge=0)
    tournament_slots: int = Field(0, ge=0)
    playoff_promotion_slots: int = Field(1, ge=1)
    two_legged_ties: bool = False
    two_legged_final: bool = False


class InitializeRequest(BaseModel):
    divisions: Optional[List[DivisionConfig]] = Field(None, description="Defaults to the five-division pyramid")


class TeamIn(BaseModel):
    team_name: str = Field(..., min_length=1, max_length=200)
    followers: int = Field(0, ge=0)


class CreateTeamsRequest(BaseModel):
    teams: List[TeamIn] = Field(..., min_length=1)


class CreateSeasonRequest(BaseModel):
    year: int = Field(..., ge=1)
    name: Optional[str] = None
    start_date: Optional[date] = None


def _division_to_dict(division):
    return {
        "division_id": division.division_id,
        "level": division.level,
        "name": division.name,
        "total_leagues": division.total_leagues,
        "teams_per_league": division.teams_per_league,
        "promote_slots": division.promote_slots,
        "promote_playoff_slots": division.promote_playoff_slots,
        "relegate_slots": division.relegate_slots,
        "tournament_slots": division.tournament_slots,
        "leagues": [
            {"league_id": league.league_id, "name": league.name, "group_code": league.group_code}
            for league in division.leagues
        ],
    }


def _season_to_dict(season):
    return {
        "season_id": season.season_id,
        "name": season.name,
        "year": season.year,
        "start_date": season.start_date.isoformat() if season.start_date else None,
        "end_date": season.end_date.isoformat() if season.end_date else None,
        "is_active": season.is_active,
        "is_completed": season.is_completed,
    }


@router.post("/initialize")
def initialize_league_system(request: Optional[InitializeRequest] = None, db: Session = Depends(get_db)):
    """
    Create (or update) the division pyramid and its leagues.
    """
    try:
        structure = None
        if request and request.divisions:
            structure = [division.model_dump() for division in request.divisions]
        divisions = DivisionService(db).initialize_league_system(structure)
        return {"divisions": [_division_to_dict(division) for division in divisions]}

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/structure")
def get_league_system_structure(db: Session = Depends(get_db)):
    try:
        divisions = DivisionService(db).get_all_divisions()
        return {"divisions": [_division_to_dict(division) for division in divisions]}

    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/teams")
def create_teams(request: CreateTeamsRequest, db: Session = Depends(get_db)):
    try:
        teams = TeamService(db).create_teams([team.model_dump() for team in request.teams])
        return {
            "teams": [
                {"team_id": team.team_id, "team_name": team.team_name, "followers": team.followers}
                for team in teams
            ]
        }

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/seasons")
def create_season(request: CreateSeasonRequest, db: Session = Depends(get_db)):
    """
    Create a season and make it the active one.
    """
    try:
        season = SeasonService(db).start_season(request.year, name=request.name, start_date=request.start_date)
        return _season_to_dict(season)

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/seasons/{season_id}/seed-assignments")
def seed_assignments(season_id: str, db: Session = Depends(get_db)):
    """
    Assign every unassigned team to a league, most followed teams in the top divisions.
    """
    try:
        SeasonService(db).get_season(season_id)
        assignments = TeamAssignmentService(db).seed_initial_assignments(season_id)
        return {
            "season_id": season_id,
            "assigned": len(assignments),
            "assignments": [
                {"team_id": a.team_id, "league_id": a.league_id, "reason": a.assignment_reason.value}
                for a in assignments
            ],
        }

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/seasons/active")
def get_active_season(db: Session = Depends(get_db)):
    try:
        season = SeasonService(db).get_active_season()
        if not season:
            return {"message": "No active season found."}
        return _season_to_dict(season)

    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))
