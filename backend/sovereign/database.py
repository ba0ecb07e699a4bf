"""
Sovereign Credit Intelligence - Database Configuration
SQLAlchemy engine and session factory for the durable stores
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL

# Create engine
engine = create_engine(DATABASE_URL, echo=False)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def init_db(bind=None):
    """Initialize database - create all tables."""
    # Register ORM models on Base.metadata before create_all
    from .models import db_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
