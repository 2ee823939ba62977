import os

# Must be set before the logging module configures itself on import
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from assessment_catalog.domain.services import CatalogService
from assessment_catalog.infrastructure.config import CatalogConfig, reset_settings
from assessment_catalog.infrastructure.models import Base


class SteppingClock:
    """Deterministic clock: starts at ``start`` and advances one second per call."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


def mcq(text="What is 2 + 2?", options=("3", "4"), answer="B", **extra):
    return {"text": text, "options": list(options), "correctAnswer": answer, **extra}


def coding(text="Reverse a string", starter="def solve(s):\n    pass\n", **extra):
    return {"text": text, "starterCode": starter, **extra}


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def SessionLocal(engine):
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


@pytest.fixture
def clock():
    return SteppingClock(datetime(2024, 5, 1, 10, 0, 0, tzinfo=UTC))


@pytest.fixture
def catalog_config():
    return CatalogConfig()


@pytest.fixture
def service(SessionLocal, catalog_config, clock):
    return CatalogService(SessionLocal, config=catalog_config, clock=clock)


@pytest.fixture
def make_mcq():
    return mcq


@pytest.fixture
def make_coding():
    return coding
