"""
Database connection and session management with centralized configuration.

This module provides the engine and session factory behind the key-value
tables, using the centralized configuration system and logging integration.
"""

from __future__ import annotations

from pydantic import ValidationError as SettingsValidationError
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .config import DatabaseConfig, get_settings
from .exceptions import ConfigurationError
from .logging import get_logger
from .models import Base

logger = get_logger(__name__)


def create_database_engine(config: DatabaseConfig | None = None) -> Engine:
    """
    Create SQLAlchemy engine with proper configuration.

    Args:
        config: Database configuration (uses default if None)

    Returns:
        Configured SQLAlchemy engine

    Raises:
        ConfigurationError: If the DB_* settings do not validate
    """
    if config is None:
        try:
            config = get_settings().database
        except SettingsValidationError as e:
            raise ConfigurationError(
                f"Invalid database settings: {e.error_count()} error(s)",
                config_key="database",
                details={"errors": [error["msg"] for error in e.errors()]},
            ) from e

    connection_url = config.get_connection_url()
    engine_options = config.get_engine_options()

    logger.info(f"Creating database engine for {config.backend} backend")
    # credentials stay out of the log
    logger.debug(f"Connection URL: ***@{connection_url.rsplit('@', 1)[-1]}")

    try:
        engine = create_engine(connection_url, **engine_options)
        logger.info("Database engine created successfully")
        return engine
    except Exception as e:
        logger.error(f"Failed to create database engine: {str(e)}")
        raise


def create_session_factory(engine: Engine | None = None) -> sessionmaker:
    """
    Create SQLAlchemy session factory.

    Example:
        >>> SessionLocal = create_session_factory()
        >>> with SessionLocal() as session:
        ...     pass
    """
    if engine is None:
        engine = create_database_engine()

    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )


def create_tables(engine: Engine) -> None:
    """Create the header and batch tables when they do not exist (tests, local runs)."""
    Base.metadata.create_all(engine)
    logger.info("Ensured catalog tables exist")


def is_database_configured() -> bool:
    """
    Check if database is properly configured.

    Example:
        >>> if is_database_configured():
        ...     engine = create_database_engine()
    """
    try:
        config = get_settings().database
        config.get_connection_url()
        return True
    except Exception as e:
        logger.warning(f"Database configuration invalid: {str(e)}")
        return False
