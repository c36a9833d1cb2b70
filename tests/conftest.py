"""
Centralized test configuration and fixtures for ephemeral-pg.

This module provides shared test fixtures that:
1. Point tests at the bundled migration fixtures
2. Provide consistent asyncpg mocks for unit tests
3. Locate or start a PostgreSQL server for integration tests
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import AsyncMock, Mock

import asyncpg
import pytest

from ephemeral_pg.config.config_manager import ConfigManager
from ephemeral_pg.database.connection_manager import build_server_url

# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

FIXTURES_DIR = Path(__file__).parent / "fixtures"
MIGRATIONS_DIR = FIXTURES_DIR / "migrations"

POSTGRES_IMAGE = "postgres:17"
SERVER_ENV_VARS = ('POSTGRES_HOST', 'POSTGRES_PORT', 'POSTGRES_USER', 'POSTGRES_PASSWORD')


@pytest.fixture
def migrations_dir() -> Path:
    """Directory holding the todo-list migrations used across tests."""
    return MIGRATIONS_DIR


# Unit test fixtures for mocked database operations

class MockTransactionContext:
    """Mock async context manager for database transactions."""
    def __init__(self, connection):
        self.connection = connection

    async def __aenter__(self):
        return self.connection

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


@pytest.fixture
def mock_db_connection():
    """Mock asyncpg connection with async methods."""
    connection = AsyncMock()
    connection.execute = AsyncMock(return_value="OK")
    connection.fetch = AsyncMock(return_value=[])
    connection.close = AsyncMock()
    connection.transaction = Mock(side_effect=lambda: MockTransactionContext(connection))
    return connection


# Integration test fixtures for a real PostgreSQL server

def _server_reachable(config: ConfigManager) -> bool:
    """Return True when an administrative connection can be opened."""
    async def probe():
        url = build_server_url(
            config.postgres_user, config.postgres_password,
            config.postgres_host, config.postgres_port
        )
        conn = await asyncpg.connect(url, timeout=2)
        await conn.close()

    try:
        asyncio.run(probe())
        return True
    except Exception as e:
        logger.debug(f"PostgreSQL not reachable at {config.postgres_host}:{config.postgres_port}: {e}")
        return False


def _start_postgres_container():
    """Start a throwaway PostgreSQL container, or return None if Docker is unavailable."""
    try:
        import docker
        client = docker.from_env()
        client.ping()
    except Exception as e:
        logger.warning(f"Docker not available for integration tests: {e}")
        return None

    container = client.containers.run(
        POSTGRES_IMAGE,
        name=f"ephemeral_pg_test_{int(time.time() * 1000) % 100000}",
        detach=True,
        environment={
            'POSTGRES_PASSWORD': 'postgres',
            # Lets the empty-password scenario connect
            'POSTGRES_HOST_AUTH_METHOD': 'trust'
        },
        ports={'5432/tcp': None}
    )
    container.reload()
    return container


@pytest.fixture(scope="session")
def postgres_server():
    """
    Session-scoped PostgreSQL server configuration for integration tests.

    Uses the server described by POSTGRES_* environment variables when it
    is reachable, otherwise starts a postgres:17 container through Docker.
    Skips when neither is available.
    """
    config = ConfigManager()
    if _server_reachable(config):
        logger.info(f"Using PostgreSQL server at {config.postgres_host}:{config.postgres_port}")
        yield config
        return

    container = _start_postgres_container()
    if container is None:
        pytest.skip("No PostgreSQL server reachable and Docker not available")

    original_env: Dict[str, Optional[str]] = {key: os.environ.get(key) for key in SERVER_ENV_VARS}
    try:
        host_port = container.ports['5432/tcp'][0]['HostPort']
        os.environ.update({
            'POSTGRES_HOST': 'localhost',
            'POSTGRES_PORT': str(host_port),
            'POSTGRES_USER': 'postgres',
            'POSTGRES_PASSWORD': 'postgres'
        })
        config = ConfigManager()

        deadline = time.monotonic() + 60
        while not _server_reachable(config):
            if time.monotonic() > deadline:
                pytest.fail("PostgreSQL container failed to start")
            time.sleep(1)

        yield config
    finally:
        for key, value in original_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        container.remove(force=True, v=True)


# Pytest configuration

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "docker: mark test as possibly requiring Docker")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.docker)
