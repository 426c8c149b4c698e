"""Infrastructure test fixtures — real SQL adapters on a throwaway SQLite file.

Invariants:
    - Every test gets a fresh database file with all tables created
    - The manager is disposed at teardown

Design Decisions:
    - File-backed SQLite over :memory: so every pooled connection sees the same tables
    - ON CONFLICT ... RETURNING runs on SQLite too, so the counter SQL is exercised as-is
"""

import pytest

from invoicing_core.infrastructure.database import DatabaseSessionManager

from tests.services.fakes import FakeAuthProvider, make_session


@pytest.fixture
async def db(tmp_path):
    manager = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'invoicing.db'}")
    await manager.create_all()
    yield manager
    await manager.dispose()


@pytest.fixture
def auth():
    return FakeAuthProvider(make_session("user-1"))
