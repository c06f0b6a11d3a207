# backend/tests/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from icm.core.config import Settings
from icm.main import create_app
from icm.repositories.memory import InMemoryKpiFieldStore, InMemorySchemeStore
from icm.schemas.scheme import SchemeIn
from icm.services.schemes import SchemeService


class TickingClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start=datetime(2025, 3, 14, 9, 30, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


def scheme_payload(**overrides):
    payload = {
        "name": "Q1 Field Sales",
        "description": "Quarterly commission for field reps",
        "effectiveStart": "2025-01-01",
        "effectiveEnd": "2025-03-31",
        "currency": "USD",
        "revenueBase": "salesOrders",
        "baseField": "amount",
        "participants": ["EMEA Field Sales"],
        "salesQuota": 10000,
        "commissionStructure": {
            "tiers": [
                {"from": 0, "to": 1000, "rate": 5},
                {"from": 1000, "to": None, "rate": 10},
            ]
        },
        "measurementRules": {
            "primaryMetrics": [],
            "minQualification": 0,
            "adjustments": [],
            "exclusions": [],
        },
        "creditRules": {
            "levels": [
                {"role": "Sales Rep", "percentage": 70},
                {"role": "Sales Manager", "percentage": 30},
            ]
        },
        "customRules": [],
    }
    payload.update(overrides)
    return payload


def scheme_in(**overrides) -> SchemeIn:
    return SchemeIn.model_validate(scheme_payload(**overrides))


# -----------------------------
# Service fixtures
# -----------------------------
@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def scheme_store():
    return InMemorySchemeStore()


@pytest.fixture
def kpi_store():
    return InMemoryKpiFieldStore()


@pytest.fixture
def service(scheme_store, kpi_store, clock):
    return SchemeService(scheme_store, kpi_store, clock=clock)


# -----------------------------
# API fixtures: separate SQLite file per test
# -----------------------------
@pytest.fixture
def sql_settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'test_api.db'}",
        STORAGE_BACKEND="sql",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def client(sql_settings):
    app = create_app(sql_settings)
    with TestClient(app) as c:
        yield c
    stores = app.state.stores
    if stores.engine is not None:
        stores.engine.dispose()
