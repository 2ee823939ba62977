"""
Centralized configuration management for the assessment catalog.

Provides environment-specific configuration with validation, type safety,
and settings management using Pydantic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings
from sqlalchemy.pool import StaticPool

DEFAULT_CATEGORY_CODES: dict[str, str] = {
    "Computer Science": "CSE",
    "Information Technology": "IT",
    "Electronics": "ECE",
    "Mechanical": "ME",
    "Civil": "CE",
}


class DatabaseConfig(BaseSettings):
    """
    Database configuration for the SQL engine backing the key-value tables.

    Example:
        >>> db_config = DatabaseConfig(backend="sqlite", sqlite_path="./test.db")
        >>> print(db_config.get_connection_url())
        >>> # sqlite:///./test.db
    """

    backend: Literal["sqlite", "mysql"] = Field("sqlite", description="Database backend type")

    # SQLite settings
    sqlite_path: str | None = Field(
        "./assessment_catalog.db", description="SQLite database file path"
    )

    # MySQL settings
    mysql_host: str | None = Field("localhost", description="MySQL host")
    mysql_port: int | None = Field(3306, ge=1, le=65535, description="MySQL port")
    mysql_user: str | None = Field("root", description="MySQL username")
    mysql_password: str | None = Field("", description="MySQL password")
    mysql_database: str | None = Field("assessment_catalog", description="MySQL database name")
    mysql_charset: str = Field("utf8mb4", description="MySQL character set")

    # Connection settings
    pool_pre_ping: bool = Field(True, description="Enable connection pool pre-ping")
    pool_recycle: int = Field(3600, ge=60, description="Connection pool recycle time (seconds)")
    echo: bool = Field(False, description="Enable SQL query logging")

    model_config = {"env_prefix": "DB_", "case_sensitive": False}

    @field_validator("sqlite_path")
    def validate_sqlite_path(cls, v):
        """Ensure the .db extension; in-memory databases are left alone."""
        if v and v != ":memory:":
            path = Path(v)
            if not path.suffix:
                v = str(path.with_suffix(".db"))
        return v

    @model_validator(mode="after")
    def validate_mysql_config(self):
        """Validate MySQL configuration completeness."""
        if self.backend == "mysql":
            missing = []
            if not self.mysql_host:
                missing.append("mysql_host")
            if not self.mysql_user:
                missing.append("mysql_user")
            if not self.mysql_database:
                missing.append("mysql_database")
            if missing:
                raise ValueError(f"MySQL backend requires: {', '.join(missing)}")
        return self

    def get_connection_url(self) -> str:
        """
        Generate database connection URL.

        Raises:
            ValueError: If backend is unsupported
        """
        if self.backend == "sqlite":
            return f"sqlite:///{self.sqlite_path}"
        elif self.backend == "mysql":
            password_part = f":{self.mysql_password}" if self.mysql_password else ""
            return (
                f"mysql+pymysql://{self.mysql_user}{password_part}@{self.mysql_host}:"
                f"{self.mysql_port}/{self.mysql_database}?charset={self.mysql_charset}"
            )
        else:
            raise ValueError(f"Unsupported database backend: {self.backend}")

    def get_engine_options(self) -> dict[str, Any]:
        """Get SQLAlchemy engine options."""
        options: dict[str, Any] = {"echo": self.echo, "future": True}
        if self.backend == "sqlite" and self.sqlite_path == ":memory:":
            # all sessions share the one in-memory connection
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        else:
            options["pool_pre_ping"] = self.pool_pre_ping
            options["pool_recycle"] = self.pool_recycle
        return options


class CatalogConfig(BaseSettings):
    """
    Catalog behaviour: batch sizing, identifier allocation and scan paging.

    Example:
        >>> catalog = CatalogConfig(batch_capacity=25)
        >>> catalog.category_codes["Civil"]
        'CE'
    """

    batch_capacity: int = Field(50, ge=1, description="Questions per stored batch record")
    max_identifier_attempts: int = Field(
        100, ge=1, description="Collision retries before identifier allocation gives up"
    )
    default_scope: str = Field(
        "default", min_length=1, description="Scope used when the creator has no address domain"
    )
    default_timezone: str = Field("Asia/Kolkata", description="Scheduling timezone default")
    scan_chunk_size: int = Field(100, ge=1, le=10000, description="Rows fetched per scan round")
    default_page_size: int = Field(50, ge=1, description="List page size when none is given")
    max_page_size: int = Field(1000, ge=1, description="Upper bound for list page size")
    category_codes: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_CODES),
        description="Category name to identifier code lookup table",
    )

    model_config = {"env_prefix": "CATALOG_", "case_sensitive": False}

    @field_validator("category_codes")
    def validate_category_codes(cls, v):
        """Codes become identifier segments, so they must be non-empty and underscore-free."""
        for name, code in v.items():
            if not code or "_" in code or "#" in code:
                raise ValueError(f"Invalid category code {code!r} for {name!r}")
        return {name: code.upper() for name, code in v.items()}

    @model_validator(mode="after")
    def validate_page_sizes(self):
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self


class LoggingConfig(BaseSettings):
    """
    Logging configuration settings.

    Example:
        >>> log_config = LoggingConfig(level="DEBUG", file_path="./logs/catalog.log")
        >>> print(log_config.get_file_handler_config())
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Minimum logging level"
    )
    file_path: str | None = Field("./logs/catalog.log", description="Log file path")
    max_bytes: int = Field(10 * 1024 * 1024, ge=1024, description="Max log file size in bytes")
    backup_count: int = Field(5, ge=1, description="Number of backup log files")
    structured: bool = Field(True, description="Use structured JSON logging")
    console_enabled: bool = Field(True, description="Enable console output")

    model_config = {"env_prefix": "LOG_", "case_sensitive": False}

    def get_file_handler_config(self) -> dict[str, Any] | None:
        """Get file handler configuration if file logging is enabled."""
        if not self.file_path:
            return None

        return {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": self.file_path,
            "maxBytes": self.max_bytes,
            "backupCount": self.backup_count,
            "encoding": "utf-8",
        }


class ApplicationConfig(BaseSettings):
    """Top-level application settings."""

    environment: Literal["development", "testing", "production"] = Field(
        "development", description="Application environment"
    )
    debug: bool = Field(False, description="Enable debug mode")
    version: str = Field("0.1.0", description="Application version")

    model_config = {"env_prefix": "APP_", "case_sensitive": False}

    @model_validator(mode="after")
    def debug_implies_development(self):
        """Ensure debug mode is only enabled in development."""
        if self.debug and self.environment == "production":
            raise ValueError("Debug mode cannot be enabled in production")
        return self


class Settings:
    """
    Complete application settings container with lazily loaded sections.

    Example:
        >>> settings = get_settings()
        >>> print(settings.database.get_connection_url())
        >>> print(settings.catalog.batch_capacity)
    """

    def __init__(self):
        self._app: ApplicationConfig | None = None
        self._database: DatabaseConfig | None = None
        self._catalog: CatalogConfig | None = None
        self._logging: LoggingConfig | None = None

    @property
    def app(self) -> ApplicationConfig:
        if self._app is None:
            self._app = ApplicationConfig()
        return self._app

    @property
    def database(self) -> DatabaseConfig:
        if self._database is None:
            self._database = DatabaseConfig()
        return self._database

    @property
    def catalog(self) -> CatalogConfig:
        if self._catalog is None:
            self._catalog = CatalogConfig()
        return self._catalog

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            if "LOG_LEVEL" in os.environ:
                self._logging = LoggingConfig()
            else:
                # Set logging level based on environment
                level = "DEBUG" if self.app.debug else "INFO"
                if self.app.environment == "production":
                    level = "WARNING"
                self._logging = LoggingConfig(level=level)
        return self._logging

    def get_environment_info(self) -> dict[str, Any]:
        """Get summary of current environment configuration."""
        return {
            "environment": self.app.environment,
            "version": self.app.version,
            "debug": self.app.debug,
            "database_backend": self.database.backend,
            "logging_level": self.logging.level,
            "catalog": {
                "batch_capacity": self.catalog.batch_capacity,
                "max_identifier_attempts": self.catalog.max_identifier_attempts,
                "default_scope": self.catalog.default_scope,
            },
        }


# JSON file section name to settings class
SETTINGS_SECTIONS: dict[str, type[BaseSettings]] = {
    "app": ApplicationConfig,
    "database": DatabaseConfig,
    "catalog": CatalogConfig,
    "logging": LoggingConfig,
}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get application settings instance (cached).

    Returns:
        Settings instance with all configuration loaded
    """
    return Settings()


def load_settings_from_file(file_path: str) -> Settings:
    """
    Load settings from a JSON configuration file.

    Each top-level section maps to the env prefix of its settings class, e.g.
    ``{"catalog": {"batch_capacity": 25}}`` sets ``CATALOG_BATCH_CAPACITY`` and
    ``{"database": {"backend": "mysql"}}`` sets ``DB_BACKEND``.

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        ValueError: If file format is unsupported
    """
    import json

    config_path = Path(file_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    if config_path.suffix.lower() == ".json":
        with open(config_path) as f:
            config_data = json.load(f)
    else:
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    for section, values in config_data.items():
        if isinstance(values, dict):
            section_class = SETTINGS_SECTIONS.get(section.lower())
            if section_class is not None:
                prefix = section_class.model_config["env_prefix"]
            else:
                prefix = f"{section.upper()}_"
            for key, value in values.items():
                env_key = f"{prefix}{key}".upper()
                if isinstance(value, (dict, list)):
                    os.environ[env_key] = json.dumps(value)
                else:
                    os.environ[env_key] = str(value)

    get_settings.cache_clear()
    return get_settings()


def override_settings(**kwargs) -> Settings:
    """
    Override specific settings for testing or development.

    Keys are environment variable names without regard to case, e.g.
    ``override_settings(app_environment="testing", catalog_batch_capacity=10)``.
    """
    for key, value in kwargs.items():
        os.environ[key.upper()] = str(value)

    get_settings.cache_clear()
    return get_settings()


def reset_settings() -> None:
    """Reset settings cache to reload from environment."""
    get_settings.cache_clear()
