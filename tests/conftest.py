"""
Global pytest fixtures for the idlescan test suite.

Provides:
- Test environment settings (set before any idlescan import)
- Async SQLite engine for store tests
- An in-memory recording DetectionStore
- Metric rule and clock factories
"""
import os
from datetime import datetime, timedelta
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
import structlog

# Set test environment BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from idlescan.modules.detection.domain.rules import MetricSpec  # noqa: E402
from tests.utils import FIXED_NOW, RecordingStore  # noqa: E402


@pytest.fixture(autouse=True)
def reset_structlog():
    """Drop logger configuration (and its captured output stream) after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_metric():
    def _make(
        description: str = "RequestCount",
        operator: str = "==",
        value: float = 0,
        statistic: str = "Sum",
        period: str = "24h",
        start_time: str = "168h",
        enable: bool = True,
    ) -> MetricSpec:
        return MetricSpec(
            description=description,
            statistic=statistic,
            period=period,
            start_time=start_time,
            constraint={"operator": operator, "value": value},
            enable=enable,
        )

    return _make


@pytest.fixture
def hours_ago():
    def _at(hours: float) -> datetime:
        return FIXED_NOW - timedelta(hours=hours)

    return _at


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator:
    """Create async SQLite engine for testing using a temporary file."""
    from sqlalchemy.ext.asyncio import create_async_engine

    db_file = f"test_{uuid4().hex}.sqlite"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", echo=False)
    yield engine
    await engine.dispose()

    if os.path.exists(db_file):
        os.remove(db_file)
