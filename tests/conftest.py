import aiosqlite
import pytest

import subtrack.db.database as db_mod
from subtrack.db.repository import SQLiteRepository


@pytest.fixture(autouse=True)
async def test_db(monkeypatch):
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.executescript(db_mod.SCHEMA)
    await conn.commit()

    async def _get_db():
        return conn

    monkeypatch.setattr(db_mod, "get_db", _get_db)
    monkeypatch.setattr(db_mod, "_db", conn)

    yield conn

    await conn.close()


@pytest.fixture
def repo(test_db):
    return SQLiteRepository()


@pytest.fixture
async def category(repo):
    return await repo.create_category("Streaming")
