"""Shared fixtures: in-memory database, API client and sample data helpers."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from meterbook.core.database import Base, get_db
from meterbook.main import app
from meterbook.services.pricing import PricingSnapshot


# Test database setup
@pytest.fixture
def test_db():
    """Create an in-memory test database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def client(test_db):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def pricing() -> PricingSnapshot:
    """Pricing used in the worked billing examples."""
    return PricingSnapshot(
        tariff_per_unit=Decimal("7.5"),
        minimum_price=Decimal("25"),
        unit_factor=Decimal("2.3"),
    )
