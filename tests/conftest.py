"""Pytest fixtures for pulsewarden tests."""

import os
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from pulsewarden.scheduler.models import (
    CheckResult,
    CheckStatus,
    CheckType,
    TaskDefinition,
)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables before any imports.

    Keeps Settings independent of the developer's shell and .env file.
    """
    os.environ.pop("POSTGRES_DSN", None)
    os.environ.setdefault("ENVIRONMENT", "test")

    # Clear the settings cache to ensure tests start fresh
    from pulsewarden.config import get_settings

    get_settings.cache_clear()

    yield

    # Cleanup after all tests
    get_settings.cache_clear()


@pytest.fixture
def mock_brain():
    """Mock memory store with empty stats and no audit storage."""
    brain = MagicMock()
    brain.remember = AsyncMock()
    brain.get_stats = AsyncMock(
        return_value={"memories": {"total": 12}, "knowledge": {"total": 3}, "skills": 2}
    )
    brain.run_maintenance = AsyncMock(return_value={"decayed": 0, "pruned": 0})
    brain.has_audit_storage = MagicMock(return_value=False)
    brain.query_audit_logs = AsyncMock(return_value={"entries": [], "total": 0})
    return brain


@pytest.fixture
def fixed_now():
    """Monday 2024-01-01 12:00 UTC."""
    return datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_task():
    """Factory for task definitions with sensible defaults."""

    def _make(name: str = "sample", check_type: CheckType = CheckType.CUSTOM, **kwargs):
        return TaskDefinition(name=name, type=check_type, **kwargs)

    return _make


@pytest.fixture
def make_result():
    """Factory for check results."""

    def _make(
        status: CheckStatus = CheckStatus.OK,
        name: str = "sample",
        message: str = "all good",
        check_type: CheckType = CheckType.CUSTOM,
        **kwargs,
    ):
        return CheckResult(name=name, type=check_type, status=status, message=message, **kwargs)

    return _make
