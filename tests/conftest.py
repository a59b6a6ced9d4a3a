import asyncio

import pytest
from databases import Database

from zapit import main, store


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'zapit.sqlite'}"


@pytest.fixture()
def run_db(db_url):
    """Run ``fn(db)`` against a fresh, connected database and return its result."""
    store.create_schema(db_url)

    def runner(fn):
        async def wrapped():
            db = Database(db_url)
            await db.connect()
            try:
                return await fn(db)
            finally:
                await db.disconnect()

        return asyncio.run(wrapped())

    return runner


@pytest.fixture()
def settings_env(db_url, monkeypatch):
    monkeypatch.setenv("DB_URL", db_url)
    monkeypatch.setenv("DOMAIN", "https://zap.example.com")
    monkeypatch.setenv("FEED_ITEMS", "50")
    monkeypatch.delenv("FEED_IMAGE_URL", raising=False)
    main.get_settings.cache_clear()
    yield
    main.get_settings.cache_clear()


@pytest.fixture()
def client(settings_env):
    from fastapi.testclient import TestClient

    with TestClient(main.app) as c:
        yield c
