from fastapi import APIRouter
from league_app.divisions.controllers.league_system_controller import router as league_system_router
from league_app.matches.controllers.match_controller import router as match_router
from league_app.standings.controllers.standings_controller import router as standing_router
from league_app.playoffs.controllers.playoff_controller import router as playoff_router
from league_app.season_transition.controllers.season_transition_controller import router as season_transition_router

api_router = APIRouter()

api_router.include_router(league_system_router, prefix="/league-system", tags=["league-system"])
api_router.include_router(match_router, prefix="/match", tags=["match"])
api_router.include_router(standing_router, prefix="/standing", tags=["standing"])
api_router.include_router(playoff_router, prefix="/playoffs", tags=["playoffs"])
api_router.include_router(season_transition_router, prefix="/season-transition", tags=["season-transition"])
