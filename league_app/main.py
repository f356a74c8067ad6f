import uvicorn
from fastapi import FastAPI
import logging
from fastapi.middleware.cors import CORSMiddleware
from league_app.core.config import settings
from league_app.core.database import init_db
from league_app.api import api_router

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="League Simulation")


# Allow CORS for all origins (you can restrict it later)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Ensure database tables are created
@app.on_event("startup")
async def startup():
    try:
        init_db()  # Calls Base.metadata.create_all(bind=engine)
        logger.info("✅ Database connected and tables created.")
    except Exception as e:
        logger.error(f"❌ Database connection error: {e}")

@app.get("/")
async def home():
    return {"message": "Welcome to the League Simulation API"}

# Include all API routes
app.include_router(api_router)


def run():
    uvicorn.run("league_app.main:app", host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    run()
