from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from league_app.core.config import settings


def build_engine(database_url: str):
    """Create the engine; SQLite needs cross-thread access for the FastAPI worker pool."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=settings.SQL_ECHO,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        database_url,
        echo=settings.SQL_ECHO,
        pool_pre_ping=True,   # tests connections before using them
        pool_recycle=1800,    # recycle every 30 min to avoid stale connections
        pool_size=30,
        max_overflow=10,
        pool_timeout=100,
    )


engine = build_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


# Dependency to get DB session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models():
    """Import every model so Base.metadata knows all tables."""
    from league_app.divisions.models.division_model import Division
    from league_app.leagues.models.leagues_models import League
    from league_app.seasons.models.seasons_model import Season
    from league_app.teams.models.team_model import Team
    from league_app.assignments.models.assignment_model import TeamLeagueAssignment
    from league_app.matches.models.match_model import Match
    from league_app.standings.models.standings_model import Standing


# Function to initialize the database
def init_db(bind=None):
    import_models()

    # Use context manager to ensure connection is released
    with (bind or engine).begin() as conn:
        Base.metadata.create_all(bind=conn)
