import logging
import sqlite3
from datetime import datetime, timezone
from typing import List

import sqlalchemy
from databases import Database
from sqlalchemy import func, insert as sql_insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .models import Item, items, metadata

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 1000


class StoreError(Exception):
    pass


class DuplicateLinkError(StoreError):
    def __init__(self, link: str):
        super().__init__(f"link already stored: {link}")
        self.link = link


class StorageUnavailableError(StoreError):
    pass


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value) -> datetime:
    # SQLite keeps no offset: everything is written as naive UTC.
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_unique_violation(error: Exception) -> bool:
    return "UNIQUE constraint failed" in str(error)


def create_schema(db_url: str) -> None:
    """Create the items table and its indexes if they do not exist yet."""
    engine = sqlalchemy.create_engine(db_url)
    try:
        metadata.create_all(engine)
        on_disk = engine.url.database not in (None, "", ":memory:")
        if engine.dialect.name == "sqlite" and on_disk:
            with engine.connect() as conn:
                conn.exec_driver_sql("PRAGMA journal_mode=WAL")
    except SQLAlchemyError as e:
        raise StorageUnavailableError(f"could not prepare database {db_url!r}") from e
    finally:
        engine.dispose()


async def insert(db: Database, link: str, title: str) -> Item:
    """Store a new link stamped with the current UTC time.

    Uniqueness is left to the ``link_index`` unique index, so two concurrent
    submissions of the same link cannot both succeed. The losing one raises
    ``DuplicateLinkError`` and the existing row is left as it was.
    """
    pub_date = utc_now()
    query = sql_insert(items).values(
        link=link,
        title=title,
        pub_date=pub_date.replace(tzinfo=None),
    )
    try:
        item_id = await db.execute(query)
    except (sqlite3.IntegrityError, IntegrityError) as e:
        if _is_unique_violation(e):
            raise DuplicateLinkError(link) from e
        raise StorageUnavailableError(f"failed to insert {link}") from e
    except (sqlite3.Error, SQLAlchemyError, OSError) as e:
        raise StorageUnavailableError(f"failed to insert {link}") from e

    logger.info("Stored link #%s: %s", item_id, link)
    return Item(id=item_id, link=link, title=title, pub_date=pub_date)


async def list_recent(db: Database, limit: int) -> List[Item]:
    """Return up to ``limit`` items, newest first.

    Ties on ``pub_date`` are broken by ``id`` so the order is total.
    """
    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise ValueError(f"limit must be an integer between 1 and {MAX_LIST_LIMIT}")

    query = (
        select(items.c.id, items.c.link, items.c.title, items.c.pub_date)
        .order_by(items.c.pub_date.desc(), items.c.id.desc())
        .limit(limit)
    )
    try:
        rows = await db.fetch_all(query)
    except (sqlite3.Error, SQLAlchemyError, OSError) as e:
        raise StorageUnavailableError("failed to read recent items") from e

    return [
        Item(
            id=row["id"],
            link=row["link"],
            title=row["title"],
            pub_date=_as_utc(row["pub_date"]),
        )
        for row in rows
    ]


async def count(db: Database) -> int:
    query = select(func.count()).select_from(items)
    try:
        return await db.fetch_val(query)
    except (sqlite3.Error, SQLAlchemyError, OSError) as e:
        raise StorageUnavailableError("failed to count items") from e
