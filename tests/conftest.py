"""
Shared pytest fixtures for the dispatch service test suite.

Provides:
    - app_settings: mock-mode Settings with the scheduler off
    - container: service container over mock providers
    - client: FastAPI TestClient; entering it runs startup, which seeds the
      in-memory database with the demo rows
    - database: async context manager for service tests that need real
      repositories on a fresh in-memory database
"""

from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from src.config import Settings
from src.infrastructure.container import Container
from src.infrastructure.database import (
    IN_MEMORY_URL,
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from src.main import create_app


@pytest.fixture()
def app_settings():
    return Settings(
        database_url=None,
        sla_evaluation_interval=0,
        instantly_campaign_id_hvac="camp-hvac",
        instantly_campaign_id_plumbing="camp-plumbing",
        instantly_campaign_id_cold="camp-cold",
        _env_file=None,
    )


@pytest.fixture()
def container(app_settings):
    return Container(app_settings)


@pytest.fixture()
def client(container):
    """Test client with startup and shutdown run around each test."""
    with TestClient(create_app(container)) as test_client:
        yield test_client


@asynccontextmanager
async def fresh_database():
    init_database(IN_MEMORY_URL)
    await create_tables()
    try:
        async with get_session_context() as session:
            yield session
    finally:
        await close_database()


@pytest.fixture()
def database():
    """
    Usage inside an async test body run with ``asyncio.run``::

        async with database() as session:
            ...
    """
    return fresh_database
