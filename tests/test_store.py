import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import insert as sql_insert

from zapit import store
from zapit.models import items


def test_insert_assigns_id_and_utc_pub_date(run_db):
    before = datetime.now(tz=timezone.utc)
    item = run_db(lambda db: store.insert(db, "https://example.com/a", "A"))
    after = datetime.now(tz=timezone.utc)

    assert item.id >= 1
    assert item.link == "https://example.com/a"
    assert item.title == "A"
    assert item.pub_date.tzinfo is not None
    assert before <= item.pub_date <= after


def test_list_recent_returns_newest_first(run_db):
    async def scenario(db):
        await store.insert(db, "https://example.com/1", "one")
        await store.insert(db, "https://example.com/2", "two")
        await store.insert(db, "https://example.com/3", "three")
        return await store.list_recent(db, 10)

    recent = run_db(scenario)
    assert [i.title for i in recent] == ["three", "two", "one"]
    assert all(i.pub_date.tzinfo == timezone.utc for i in recent)


def test_list_recent_respects_limit(run_db):
    async def scenario(db):
        for n in range(5):
            await store.insert(db, f"https://example.com/{n}", f"item {n}")
        return await store.list_recent(db, 2)

    recent = run_db(scenario)
    assert len(recent) == 2
    assert [i.link for i in recent] == [
        "https://example.com/4",
        "https://example.com/3",
    ]


def test_list_recent_orders_by_pub_date_then_id(run_db):
    same = datetime(2024, 5, 1, 12, 0, 0)
    later = datetime(2024, 5, 2, 8, 30, 0)

    async def scenario(db):
        # id 1 is the newest by date, ids 2 and 3 share a timestamp
        rows = [("x", later), ("y", same), ("z", same)]
        for name, pub_date in rows:
            await db.execute(
                sql_insert(items).values(
                    link=f"https://example.com/{name}", title=name, pub_date=pub_date
                )
            )
        return await store.list_recent(db, 10)

    recent = run_db(scenario)
    assert [i.title for i in recent] == ["x", "z", "y"]
    assert recent[0].pub_date == later.replace(tzinfo=timezone.utc)


@pytest.mark.parametrize("limit", [0, -1, store.MAX_LIST_LIMIT + 1])
def test_list_recent_rejects_out_of_range_limit(run_db, limit):
    with pytest.raises(ValueError):
        run_db(lambda db: store.list_recent(db, limit))


def test_duplicate_link_raises_and_keeps_original_row(run_db):
    async def scenario(db):
        await store.insert(db, "https://example.com/a", "A")
        with pytest.raises(store.DuplicateLinkError) as excinfo:
            await store.insert(db, "https://example.com/a", "A2")
        return excinfo.value, await store.list_recent(db, 10)

    error, recent = run_db(scenario)
    assert error.link == "https://example.com/a"
    assert len(recent) == 1
    assert recent[0].title == "A"


def test_concurrent_duplicates_leave_a_single_row(run_db):
    async def scenario(db):
        results = await asyncio.gather(
            store.insert(db, "https://example.com/race", "first"),
            store.insert(db, "https://example.com/race", "second"),
            return_exceptions=True,
        )
        return results, await store.list_recent(db, 10)

    results, recent = run_db(scenario)
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], store.DuplicateLinkError)
    assert len(recent) == 1


def test_count(run_db):
    async def scenario(db):
        assert await store.count(db) == 0
        await store.insert(db, "https://example.com/a", "A")
        return await store.count(db)

    assert run_db(scenario) == 1


def test_missing_table_is_storage_unavailable(db_url):
    from databases import Database

    async def scenario():
        db = Database(db_url)
        await db.connect()
        try:
            with pytest.raises(store.StorageUnavailableError):
                await store.list_recent(db, 10)
            with pytest.raises(store.StorageUnavailableError):
                await store.insert(db, "https://example.com/a", "A")
        finally:
            await db.disconnect()

    asyncio.run(scenario())


def test_create_schema_is_idempotent(db_url, run_db):
    store.create_schema(db_url)
    store.create_schema(db_url)
    assert run_db(store.count) == 0
