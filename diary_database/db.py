import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

# PUBLIC_INTERFACE
def get_database_url() -> Optional[str]:
    """
    Retrieves the database URL from the environment variable DATABASE_URL.
    Returns None when it is not set, in which case the in-memory store is used.
    """
    load_dotenv()
    return os.getenv("DATABASE_URL") or None

def is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")

# PUBLIC_INTERFACE
def make_engine(database_url: str, **kwargs):
    """
    Creates a SQLAlchemy engine for the given URL.
    In-memory SQLite gets a single shared connection so every worker thread
    sees the same database.
    """
    if is_memory_sqlite(database_url):
        kwargs.setdefault("poolclass", StaticPool)
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(database_url, future=True, echo=False, **kwargs)

# PUBLIC_INTERFACE
def make_session_factory(engine):
    """Returns a session factory whose objects stay readable after commit."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
