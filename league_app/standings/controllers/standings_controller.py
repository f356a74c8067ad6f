from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from league_app.core.database import get_db
from league_app.core.exceptions import LeagueError
from league_app.standings.services.standing_service import StandingService

router = APIRouter()


@router.get("/{season_id}/{league_id}")
def get_standings(season_id: str, league_id: str, db: Session = Depends(get_db)):
    """
    League table with promotion, playoff, relegation and tournament zones.
    """
    try:
        return StandingService(db).get_standings(season_id, league_id)

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{season_id}/{league_id}/recompute")
def recompute_standings(season_id: str, league_id: str, db: Session = Depends(get_db)):
    try:
        standings = StandingService(db).recompute(season_id, league_id)
        return {"season_id": season_id, "league_id": league_id, "standings": [s.to_dict() for s in standings]}

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))
