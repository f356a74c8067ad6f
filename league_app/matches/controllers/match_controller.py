from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from league_app.core.config import settings
from league_app.core.database import get_db
from league_app.core.exceptions import LeagueError
from league_app.matches.services.fixture_service import FixtureService
from league_app.matches.services.match_service import MatchService
from league_app.matches.services.match_simulation_service import MatchSimulationService

router = APIRouter()


class GenerateScheduleRequest(BaseModel):
    season_id: str
    league_id: Optional[str] = Field(None, description="Omit to generate every league of the season")
    start_date: date
    days_per_matchday: int = Field(default_factory=lambda: settings.DEFAULT_DAYS_PER_MATCHDAY)


class MatchResultRequest(BaseModel):
    home_goals: int = Field(..., ge=0)
    away_goals: int = Field(..., ge=0)
    home_penalties: Optional[int] = Field(None, ge=0, description="Shoot-out, deciding playoff match only")
    away_penalties: Optional[int] = Field(None, ge=0)


class MatchStatusRequest(BaseModel):
    status: str = Field(..., description="scheduled, live, postponed or cancelled")


class SimulateRequest(BaseModel):
    seed: Optional[int] = Field(None, description="RNG seed for reproducibility")
    until: Optional[date] = None
    organize_playoffs: bool = True


@router.post("/generate-schedule")
def generate_schedule(request: GenerateScheduleRequest, db: Session = Depends(get_db)):
    """
    Generate the double round-robin for one league, or for every league of the season.
    """
    try:
        fixture_service = FixtureService(db)
        if request.league_id:
            matches = fixture_service.generate_schedule(
                request.league_id, request.season_id, request.start_date, request.days_per_matchday
            )
            return {
                "season_id": request.season_id,
                "league_id": request.league_id,
                "total_matches": len(matches),
                "matchdays": max(match.matchday for match in matches),
            }

        return fixture_service.generate_season_schedule(
            request.season_id, request.start_date, request.days_per_matchday
        )

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{match_id}/result")
def record_result(match_id: str, request: MatchResultRequest, db: Session = Depends(get_db)):
    try:
        match = MatchService(db).record_match_result(
            match_id, request.home_goals, request.away_goals, request.home_penalties, request.away_penalties
        )
        return match.to_dict()

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.patch("/{match_id}/status")
def update_status(match_id: str, request: MatchStatusRequest, db: Session = Depends(get_db)):
    try:
        match = MatchService(db).update_match_status(match_id, request.status)
        return match.to_dict()

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{match_id}/simulate")
def simulate_match(match_id: str, request: Optional[SimulateRequest] = None, db: Session = Depends(get_db)):
    try:
        seed = request.seed if request else None
        match = MatchSimulationService(db, seed=seed).simulate_match(match_id)
        return match.to_dict()

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/simulate-pending/{season_id}")
def simulate_pending(season_id: str, request: Optional[SimulateRequest] = None, db: Session = Depends(get_db)):
    """
    Simulate every scheduled match of the season in date order, playoff rounds included.
    """
    try:
        request = request or SimulateRequest()
        matches = MatchSimulationService(db, seed=request.seed).simulate_pending(
            season_id, until=request.until, organize_playoffs=request.organize_playoffs
        )
        return {"season_id": season_id, "simulated": len(matches)}

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/")
def get_matches(
    season_id: Optional[str] = None,
    league_id: Optional[str] = None,
    division_id: Optional[str] = None,
    team_id: Optional[str] = None,
    matchday: Optional[int] = None,
    status: Optional[str] = None,
    is_playoff: Optional[bool] = None,
    playoff_round: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        return MatchService(db).get_matches(
            season_id=season_id, league_id=league_id, division_id=division_id, team_id=team_id,
            matchday=matchday, status=status, is_playoff=is_playoff, playoff_round=playoff_round,
            from_date=from_date, to_date=to_date, page=page, limit=limit,
        )

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))
