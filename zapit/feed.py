"""RSS 2.0 rendering of the stored links.

Reference: https://www.rssboard.org/rss-specification
"""

import xml.etree.ElementTree as ET
from email.utils import format_datetime
from typing import Optional, Sequence

from .config import Settings
from .models import Item

RSS_CONTENT_TYPE = "application/rss+xml; charset=utf-8"
ATOM_NS = "http://www.w3.org/2005/Atom"
GENERATOR = "ZapIt"

ET.register_namespace("atom", ATOM_NS)


def _add_text(
    parent: ET.Element, tag: str, text: str, attrib: Optional[dict] = None
) -> ET.Element:
    element = ET.SubElement(parent, tag, attrib or {})
    element.text = text
    return element


def build_item(entry: Item) -> ET.Element:
    element = ET.Element("item")
    _add_text(element, "title", entry.title)
    _add_text(element, "link", entry.link)
    _add_text(element, "guid", entry.link, {"isPermaLink": "true"})
    _add_text(element, "pubDate", format_datetime(entry.pub_date))
    return element


def build_feed(settings: Settings, entries: Sequence[Item]) -> bytes:
    """Serialize ``entries`` (already newest first) into an RSS document.

    Channel metadata comes only from ``settings``. ``lastBuildDate`` is the
    newest item's date rather than the wall clock, so the same store state
    always renders the same bytes.
    """
    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")

    _add_text(channel, "title", settings.FEED_TITLE)
    _add_text(channel, "link", settings.DOMAIN)
    _add_text(channel, "description", settings.FEED_DESCRIPTION)
    ET.SubElement(
        channel,
        f"{{{ATOM_NS}}}link",
        {"href": settings.feed_url, "rel": "self", "type": "application/rss+xml"},
    )
    _add_text(channel, "generator", GENERATOR)
    if entries:
        _add_text(channel, "lastBuildDate", format_datetime(entries[0].pub_date))

    if settings.FEED_IMAGE_URL:
        image = ET.SubElement(channel, "image")
        _add_text(image, "url", settings.FEED_IMAGE_URL)
        _add_text(image, "title", settings.FEED_TITLE)
        _add_text(image, "link", settings.DOMAIN)

    for entry in entries:
        channel.append(build_item(entry))

    return ET.tostring(rss, encoding="utf-8", xml_declaration=True)
