"""
Database configuration and session management
"""

from typing import Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from config.settings import settings

Base = declarative_base()

_engines: Dict[str, Engine] = {}


def get_engine(database_url: Optional[str] = None) -> Engine:
    """Create (once per URL) and return a SQLAlchemy engine"""
    url = database_url or settings.database_url
    if url in _engines:
        return _engines[url]

    if url.startswith("sqlite"):
        # SQLite specific configuration
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": 30
            },
            poolclass=StaticPool,
        )
    else:
        # For other databases (PostgreSQL, MySQL, etc.)
        engine = create_engine(url)

    _engines[url] = engine
    return engine


def get_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine(database_url))


def init_db(database_url: Optional[str] = None) -> Engine:
    """Initialize database tables"""
    # Import all models to register them with SQLAlchemy
    from backtesting.data import models  # noqa: F401
    engine = get_engine(database_url)
    Base.metadata.create_all(bind=engine)
    return engine
