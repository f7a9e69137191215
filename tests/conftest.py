"""Shared fixtures for the progression test suite."""

import os
from uuid import uuid4

import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from pomoquest.gamification.progression_engine import ProgressionEngine  # noqa: E402
from pomoquest.sync.local_store import LocalStore  # noqa: E402


@pytest.fixture
def engine() -> ProgressionEngine:
    return ProgressionEngine()


@pytest.fixture
def store() -> LocalStore:
    """In-memory store isolated by namespace (the memory backend is process-wide)."""
    return LocalStore(namespace=f"test-{uuid4().hex}")
