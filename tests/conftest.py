"""Shared test fixtures."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from dailybudget.database.store import LedgerStore

# Test fixture config directory with synthetic data
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"

WALLET_APP = "com.google.android.apps.walletnfcrel"


@pytest.fixture
def store():
    s = LedgerStore(":memory:")
    yield s
    s.close()


def utc(year, month, day, hour=12, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
