from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from league_app.core.database import get_db
from league_app.core.exceptions import LeagueError
from league_app.season_transition.services.season_transition_service import SeasonTransitionService

router = APIRouter()


class ExecuteTransitionRequest(BaseModel):
    next_season_name: Optional[str] = None
    start_date: Optional[date] = None


@router.get("/{season_id}/closure-report")
def get_closure_report(season_id: str, db: Session = Depends(get_db)):
    """
    Promotions, relegations, tournament qualifiers and anything still blocking the season close.
    """
    try:
        return SeasonTransitionService(db).closure_report(season_id).to_dict()

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{season_id}/execute")
def execute_transition(season_id: str, request: Optional[ExecuteTransitionRequest] = None,
                       db: Session = Depends(get_db)):
    try:
        request = request or ExecuteTransitionRequest()
        result = SeasonTransitionService(db).execute_transition(
            season_id, next_season_name=request.next_season_name, start_date=request.start_date
        )
        return result.to_dict()

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))
