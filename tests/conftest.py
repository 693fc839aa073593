"""Shared test fixtures for the clinic assistant test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ.setdefault("METRICS_ENABLED", "false")


class FakeQueryService:
    """Stands in for the clinic backend; records every call it receives."""

    def __init__(self, responses: dict | None = None):
        self.responses = responses or {}
        self.calls: list[tuple[str, dict]] = []

    def call(self, name, arguments):
        self.calls.append((name, dict(arguments)))
        response = self.responses.get(name)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def engine():
    """A fresh in-memory database per test."""
    from clinic_assistant.database import create_db_engine

    db = create_db_engine("sqlite://")
    yield db
    db.dispose()


@pytest.fixture
def history(engine):
    from clinic_assistant.services.history import ChatHistoryService

    return ChatHistoryService(engine)


@pytest.fixture
def queries():
    return FakeQueryService()


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock clinic API responses."""

    def _make(data, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
