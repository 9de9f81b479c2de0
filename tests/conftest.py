"""Pytest configuration and fixtures."""

import os
from datetime import UTC, datetime

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from cpa_alerts.config import load_reference_data  # noqa: E402
from cpa_alerts.service import AlertsService  # noqa: E402
from cpa_alerts.store import MemoryStore  # noqa: E402

NOW = datetime(2026, 1, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def now():
    """Fixed clock used by every derivation under test."""
    return NOW


@pytest.fixture
def reference():
    """Reference data shipped with the package."""
    return load_reference_data()


@pytest.fixture
def store():
    """In-memory store with no simulated latency."""
    return MemoryStore(latency=(0.0, 0.0), timeout=5.0)


@pytest.fixture
def service(store, reference):
    """Service over the memory store with a frozen clock."""
    return AlertsService(store, reference=reference, clock=lambda: NOW)
