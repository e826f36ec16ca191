"""
This file contains shared fixtures for the test suite.
"""

import logging
import os
import tempfile
import uuid

import pytest
import pytest_asyncio

# Set env vars before any application modules are imported
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("PYTHONIOENCODING", "utf-8")

from softdal import Session, SessionState

logger = logging.getLogger(__name__)

BRANDS_DDL = """
    CREATE TABLE brands(id INTEGER PRIMARY KEY AUTOINCREMENT,
                        brand_name VARCHAR(100) NOT NULL,
                        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                        deleted_at TIMESTAMP,
                        deleted_by_id INTEGER,
                        deleted_by_name VARCHAR(100))
"""

MODELS_DDL = """
    CREATE TABLE models(id INTEGER PRIMARY KEY AUTOINCREMENT,
                        brand_id INTEGER NOT NULL,
                        model_name VARCHAR(100) NOT NULL,
                        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                        deleted_at TIMESTAMP,
                        deleted_by_id INTEGER,
                        deleted_by_name VARCHAR(100),
                        FOREIGN KEY (brand_id) REFERENCES brands (id) ON DELETE CASCADE)
"""


@pytest.fixture
def temp_db():
    """Path of a uniquely named temporary database file, removed afterwards."""
    unique_id = str(uuid.uuid4())[:8]
    with tempfile.NamedTemporaryFile(suffix=".db", prefix=f"softdal_test_{unique_id}_", delete=False) as tmp:
        db_path = tmp.name

    logger.info(f"Creating temporary database: {db_path}")
    try:
        yield db_path
    finally:
        for suffix in ("", "-journal", "-wal", "-shm"):
            try:
                if os.path.exists(db_path + suffix):
                    os.unlink(db_path + suffix)
            except OSError as e:
                logger.error(f"Error during test file cleanup: {e}")


@pytest.fixture
def make_session(temp_db):
    """Factory for sessions on the temporary database with short timeouts."""

    def factory(path: str = None, **kwargs) -> Session:
        kwargs.setdefault("pool_size", 3)
        kwargs.setdefault("pool_timeout", 2.0)
        kwargs.setdefault("busy_timeout", 500)
        return Session(path or temp_db, **kwargs)

    return factory


@pytest_asyncio.fixture
async def session(make_session):
    """A connected session, closed after the test if still open."""
    db = make_session()
    await db.connect()
    try:
        yield db
    finally:
        if db.state is SessionState.CONNECTED:
            await db.close()


@pytest_asyncio.fixture
async def catalog(session):
    """Session with empty ``brands`` and ``models`` tables."""
    await session.exec(BRANDS_DDL)
    await session.exec(MODELS_DDL)
    return session


async def count_rows(db: Session, table: str, where: str = "1 = 1") -> int:
    row = await db.query_row(f"SELECT COUNT(*) AS n FROM {table} WHERE {where}")
    return row["n"]
