# This project was developed with assistance from AI tools.
"""Integration test fixtures -- real PostgreSQL, no mocks.

A session-scoped container provides PostgreSQL; Alembic migrates it once.
Workflow services commit their own transactions, so each test truncates
the tables afterwards instead of rolling back a savepoint.
"""

import os

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

from src.services.repository import SqlBackend

pytestmark = pytest.mark.integration


@pytest.fixture(scope="session")
def pg_container():
    """Start postgres:16 via testcontainers."""
    with PostgresContainer(
        image="postgres:16",
        username="test",
        password="test",
        dbname="test",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def db_url(pg_container):
    """Async DB URL for asyncpg."""
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://test:test@{host}:{port}/test"


@pytest.fixture(scope="session")
def _run_migrations(db_url):
    """alembic upgrade head against the container."""
    from alembic import command
    from alembic.config import Config

    db_dir = os.path.join(os.path.dirname(__file__), "..", "..", "..", "db")
    alembic_cfg = Config(os.path.join(db_dir, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(db_dir, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(alembic_cfg, "head")


@pytest_asyncio.fixture
async def async_engine(db_url, _run_migrations):
    """Engine without pooling so concurrent sessions get their own connections."""
    engine = create_async_engine(db_url, echo=False, poolclass=NullPool)
    yield engine
    async with engine.begin() as conn:
        await conn.execute(text("TRUNCATE TABLE loan_applications, underwriting_settings"))
    await engine.dispose()


@pytest.fixture
def sql_backend(async_engine):
    return SqlBackend(async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False))
