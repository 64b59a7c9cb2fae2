"""cinematch_engine/models/database.py"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cinematch_engine.config import get_database_url
from cinematch_engine.models.base import Base


def create_session_factory(database_url: str | None = None) -> sessionmaker:
    """
    Create engine and session factory, creating tables if needed.

    Args:
        database_url: Connection string (from config if None)

    Returns:
        Session factory bound to the engine
    """
    database_url = database_url or get_database_url()

    if database_url is None:
        raise ValueError("DATABASE_URL is not configured. Set the DATABASE_URL environment variable.")

    engine = create_engine(
        database_url,
        pool_pre_ping=True,
        echo=False  # Set to True for SQL debugging
    )
    Base.metadata.create_all(engine)

    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
