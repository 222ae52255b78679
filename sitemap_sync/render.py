"""Serialize sitemap records and publish the document to storage."""

from __future__ import annotations

from typing import Iterable, Protocol
import xml.etree.ElementTree as ET

from sitemap_sync.errors import PublishError
from sitemap_sync.logging_config import get_logger
from sitemap_sync.models import PageRecord, PublishResult

LOGGER = get_logger(__name__)

SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"
SITEMAP_FILENAME = "sitemap.xml"
CONTENT_TYPE = "application/xml"


class SitemapWriter(Protocol):
    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        ...


def render_sitemap(records: Iterable[PageRecord]) -> bytes:
    """Render records, in order and without deduplication, as sitemap XML."""

    root = ET.Element("urlset", {"xmlns": SITEMAP_NAMESPACE})
    for record in records:
        url = ET.SubElement(root, "url")
        for tag, value in (("loc", record.loc), ("lastmod", record.lastmod)):
            if value:
                ET.SubElement(url, tag).text = value
    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="UTF-8", xml_declaration=True) + b"\n"


def sitemap_object_path(target: str | None) -> str:
    """Object name for the sitemap under the configured target prefix."""

    prefix = (target or "").strip().strip("/")
    return f"{prefix}/{SITEMAP_FILENAME}" if prefix else SITEMAP_FILENAME


async def publish_sitemap(
    records: Iterable[PageRecord],
    target: str | None,
    store: SitemapWriter,
) -> PublishResult:
    """Render and upload the sitemap as a single whole-object write."""

    items = list(records)
    payload = render_sitemap(items)
    path = sitemap_object_path(target)
    try:
        await store.upload(path, payload, CONTENT_TYPE)
    except PublishError:
        raise
    except Exception as exc:
        raise PublishError(f"Failed to publish sitemap: {exc}", path=path) from exc

    LOGGER.info("Sitemap published | path=%s records=%d bytes=%d", path, len(items), len(payload))
    return PublishResult(object_path=path, record_count=len(items), byte_count=len(payload))


__all__ = [
    "CONTENT_TYPE",
    "SITEMAP_NAMESPACE",
    "publish_sitemap",
    "render_sitemap",
    "sitemap_object_path",
]
