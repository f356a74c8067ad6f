from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from league_app.core.database import get_db
from league_app.core.exceptions import LeagueError
from league_app.playoffs.services.playoff_service import PlayoffService, PlayoffsNotReady

router = APIRouter()


@router.post("/{division_id}/{season_id}/organize")
def organize_playoffs(division_id: str, season_id: str, db: Session = Depends(get_db)):
    """
    Build the first playoff round once every regular match of the division is finished.
    """
    try:
        result = PlayoffService(db).organize_playoffs(division_id, season_id)

        if isinstance(result, PlayoffsNotReady):
            return {"ready": False, **result.to_dict()}
        if not result:
            return {"ready": True, "message": "Division has no playoff slots.", "matches": []}

        return {"ready": True, "matches": [match.to_dict() for match in result]}

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{division_id}/{season_id}/status")
def get_playoff_status(division_id: str, season_id: str, db: Session = Depends(get_db)):
    try:
        return PlayoffService(db).get_playoff_status(division_id, season_id)

    except LeagueError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))
