import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

import uvicorn
from databases import Database
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import config, store
from .feed import RSS_CONTENT_TYPE, build_feed
from .models import Submission

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

DEFAULTS_TO_ANNOUNCE = ("DB_URL", "DOMAIN", "LISTEN_IFACE", "LISTEN_PORT")


@lru_cache
def get_settings() -> config.Settings:
    return config.Settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())
    for name in DEFAULTS_TO_ANNOUNCE:
        if name not in settings.model_fields_set:
            logger.warning(
                "`%s` not set, defaulting to `%s`", name, getattr(settings, name)
            )

    store.create_schema(settings.DB_URL)
    db = Database(settings.DB_URL)
    await db.connect()
    app.state.db = db
    logger.info("Connected to %s", settings.DB_URL)

    yield

    await db.disconnect()


async def get_db(request: Request) -> Database:
    return request.app.state.db


app = FastAPI(lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = exc.errors()[0]
    field = ".".join(
        part for part in error["loc"] if isinstance(part, str) and part != "body"
    )
    field = field or "body"
    message = error["msg"].removeprefix("Value error, ")
    logger.info("Rejected submission: %s: %s", field, message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"{field}: {message}"},
    )


@app.exception_handler(store.StorageUnavailableError)
async def storage_error_handler(request: Request, exc: store.StorageUnavailableError):
    logger.exception(
        "Storage error on %s %s: %s", request.method, request.url.path, exc
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable"},
    )


@app.get("/health")
async def health(db: Annotated[Database, Depends(get_db)]):
    return {"status": "ok", "items": await store.count(db)}


@app.get("/feed.xml")
async def feed(
    db: Annotated[Database, Depends(get_db)],
    settings: Annotated[config.Settings, Depends(get_settings)],
):
    entries = await store.list_recent(db, settings.FEED_ITEMS)
    return Response(content=build_feed(settings, entries), media_type=RSS_CONTENT_TYPE)


@app.post("/add", status_code=status.HTTP_201_CREATED)
async def add_item(
    submission: Submission,
    response: Response,
    db: Annotated[Database, Depends(get_db)],
):
    try:
        await store.insert(db, submission.link, submission.title)
    except store.DuplicateLinkError:
        # Already stored
        logger.info("Already zapped: %s", submission.link)
        response.status_code = status.HTTP_200_OK
        return {"status": "exists"}
    return {"status": "created"}


def run():
    settings = get_settings()
    logger.info("Listening on %s...", settings.listen_addr)
    uvicorn.run(app, host=settings.LISTEN_IFACE, port=settings.LISTEN_PORT)


if __name__ == "__main__":
    run()
