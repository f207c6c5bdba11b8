from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import DATABASE_URL, SQL_ECHO
from .models import Base

engine = create_engine(DATABASE_URL, echo=SQL_ECHO)
SessionLocal = sessionmaker(bind=engine)


def init_db() -> None:
    """Create all tables (local runs; managed databases go through alembic)."""
    Base.metadata.create_all(bind=engine)
