import re
from datetime import datetime

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from sqlalchemy import Column, DateTime, Index, Integer, MetaData, Table, Text

MAX_TITLE_LENGTH = 300

# Code points XML 1.0 cannot carry, not even escaped.
XML_FORBIDDEN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")

http_url = TypeAdapter(HttpUrl)

metadata = MetaData()

items = Table(
    "items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("link", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("pub_date", DateTime, nullable=False),
)

Index("pub_date_index", items.c.pub_date)
Index("link_index", items.c.link, unique=True)


class Item(BaseModel):
    """A stored link. ``pub_date`` is always timezone-aware UTC."""

    model_config = ConfigDict(frozen=True)

    id: int
    link: str
    title: str
    pub_date: datetime


class Submission(BaseModel):
    # Anything else in the payload (pub_date included) is ignored:
    # timestamps are assigned by the server.
    model_config = ConfigDict(str_strip_whitespace=True)

    link: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)

    @field_validator("link", "title")
    @classmethod
    def xml_safe(cls, value: str) -> str:
        if XML_FORBIDDEN.search(value):
            raise ValueError("contains characters not allowed in XML")
        return value

    @field_validator("link")
    @classmethod
    def link_is_http_url(cls, value: str) -> str:
        # HttpUrl normalizes (e.g. adds a trailing slash); the raw link is kept.
        try:
            http_url.validate_python(value)
        except ValidationError:
            raise ValueError("must be an absolute http(s) URL") from None
        return value
