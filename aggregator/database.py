"""
Database configuration and session management.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    database_url: str = "sqlite:///./activity_stats.db"
    echo: bool = False

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"  # Ignore extra environment variables
    )


def build_engine(database_url: str, echo: bool = False):
    """Create an engine, with thread-safe settings for SQLite."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={
                "check_same_thread": False,
            },
        )
    return create_engine(database_url, echo=echo)


# Global settings
db_settings = DatabaseSettings()

engine = build_engine(db_settings.database_url, db_settings.echo)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Create declarative base
Base = declarative_base()


def create_tables(bind=None):
    """Create all database tables."""
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(bind=bind or engine)
