"""Shared test fixtures for the Keystone test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from keystone.startup.orchestrator import BootstrapSequencer

SECRET = "s" * 32
REFRESH_SECRET = "r" * 32


@pytest.fixture
def valid_env() -> dict[str, str]:
    """A minimal environment snapshot that passes validation."""
    return {
        "JWT_SECRET": SECRET,
        "JWT_REFRESH_SECRET": REFRESH_SECRET,
        "DATABASE_HOST": "db.internal",
        "DATABASE_USER": "keystone",
        "DATABASE_PASSWORD": "db-password",  # noqa: S105 - test credential
        "DATABASE_NAME": "keystone",
    }


def build_app(env: dict[str, str], **options: Any) -> FastAPI:
    """Run the sequencer up to the point where the listener would bind.

    For synchronous tests only; async tests await ``configure()`` directly.
    """
    sequencer = BootstrapSequencer(env, **options)
    return asyncio.run(sequencer.configure())


@pytest.fixture
def app(valid_env: dict[str, str]) -> FastAPI:
    """Application configured from the valid environment."""
    return build_app(valid_env)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Test client for the configured application."""
    with TestClient(app) as test_client:
        yield test_client
