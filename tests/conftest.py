"""
Global test configuration and fixtures for the session store

Integration fixtures run against a temporary SQLite file through aiosqlite,
the same driver the store uses by default.
"""

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sqlsession import SQLSessionStore


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def database_url(tmp_path: Path) -> str:
    """URL of a throwaway SQLite database file"""
    return f"sqlite+aiosqlite:///{tmp_path / 'sessions.sqlite'}"


@pytest_asyncio.fixture(scope="function")
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Async engine shared by the stores of one test"""
    engine = create_async_engine(database_url, connect_args={"timeout": 30})
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def store(engine: AsyncEngine) -> AsyncGenerator[SQLSessionStore, None]:
    """A ready store with the background sweep turned off"""
    store = SQLSessionStore(engine=engine, cleanup_interval=0)
    await store.ready
    yield store
    await store.close()


# ============================================================================
# Data Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def sample_session():
    """Session payload as a session middleware would hand it over"""
    return {
        "cookie": {
            "maxAge": 20000,
        },
        "name": "sample name",
    }


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: fast tests without a database"
    )
    config.addinivalue_line(
        "markers", "integration: tests that talk to a real SQLite database"
    )
