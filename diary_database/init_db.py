"""
Database initialization script.

Run this script to create all required tables in the database named by
DATABASE_URL.
"""
from diary_database.db import get_database_url, make_engine
from diary_database.models import Base

# PUBLIC_INTERFACE
def init_db(engine=None):
    """Initializes the database by creating all tables if they do not exist."""
    if engine is None:
        database_url = get_database_url()
        if not database_url:
            raise ValueError("DATABASE_URL environment variable not set.")
        engine = make_engine(database_url)
    Base.metadata.create_all(bind=engine)
    return engine

if __name__ == "__main__":
    init_db()
    print("Database tables created successfully.")
