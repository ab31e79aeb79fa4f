"""Shared fixtures."""

import pytest

from planguard.config import get_settings
from planguard.models.plan import PlanPoint
from planguard.services.storage import SQLitePlanStorage


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "guardrails.db")


@pytest.fixture
async def store(db_path):
    storage = await SQLitePlanStorage.open(db_path)
    yield storage
    await storage.aclose()


@pytest.fixture
def plan_rows():
    """A small spreadsheet export with two scenarios."""
    return [
        {"Category": "Accounts", "Item": "401k", "Assumptions": "Average", "2030": "$100,000", "2031": "$120,000"},
        {"Category": "Accounts", "Item": "Housing", "Assumptions": "Average", "2030": "$500,000", "2031": "$510,000"},
        {"Category": "Accounts", "Item": "401k", "Assumptions": "Good", "2030": "$110,000", "2031": "$140,000"},
        {"Category": "Expenses", "Item": "Food", "Assumptions": "Average", "2030": "$9,000", "2031": "$9,500"},
    ]


@pytest.fixture
def series():
    return [
        PlanPoint(date="2030-01-01", value=100000),
        PlanPoint(date="2031-01-01", value=120000),
    ]


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    """Isolate every test from the developer's environment and .env file."""
    for name in (
        "STORAGE_MODE",
        "LOCAL_STORE_PATH",
        "REMOTE_STORE_BASE_URL",
        "REMOTE_STORE_API_TOKEN",
        "REMOTE_STORE_TIMEOUT_SECONDS",
        "DEFAULT_SCENARIO",
        "DEFAULT_LOWER_PCT",
        "DEFAULT_UPPER_PCT",
        "DEFAULT_EXCLUDED_ITEMS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
