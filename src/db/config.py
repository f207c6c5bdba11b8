import os

# Default to SQLite for local development if Postgres is unavailable
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./theoretical_index.db"
)

SQL_ECHO = os.getenv("SQL_ECHO", "0") == "1"
