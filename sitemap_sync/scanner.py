"""Derive sitemap records from the storage account's published pages."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterable, Iterable

from sitemap_sync.logging_config import get_logger
from sitemap_sync.matcher import EXCLUDED_SITES, has_long_digit_run, in_excluded_site
from sitemap_sync.models import BlobDescriptor, PageRecord

LOGGER = get_logger(__name__)

INDEX_SUFFIX = "index.html"
ERROR_ROUTE_SUFFIX = "404/"


def to_lastmod(value: datetime) -> str:
    """Date portion of the UTC ISO-8601 form of ``value``."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()[:10]


def route_for(name: str, excluded_sites: Iterable[str] = EXCLUDED_SITES) -> str | None:
    """Return the page route for an object name, or None when it is not indexable."""

    if not name.endswith(INDEX_SUFFIX):
        return None
    route = name[: -len(INDEX_SUFFIX)]
    if route.endswith(ERROR_ROUTE_SUFFIX):
        return None
    if in_excluded_site(route, excluded_sites):
        return None
    if has_long_digit_run(route):
        LOGGER.debug("Skipping temporary object %s", name)
        return None
    return route


def join_origin(site_origin: str, route: str) -> str:
    return f"{site_origin.rstrip('/')}/{route.lstrip('/')}"


async def scan_storage_inventory(
    listing: AsyncIterable[BlobDescriptor],
    site_origin: str,
    excluded_sites: Iterable[str] = EXCLUDED_SITES,
) -> list[PageRecord]:
    """Map a storage listing onto sitemap records, in listing order."""

    sites = frozenset(excluded_sites)
    records: list[PageRecord] = []
    seen = 0
    async for blob in listing:
        seen += 1
        route = route_for(blob.name, sites)
        if route is None:
            continue
        records.append(
            PageRecord(loc=join_origin(site_origin, route), lastmod=to_lastmod(blob.last_modified))
        )

    LOGGER.info("Storage inventory scanned | objects=%d pages=%d", seen, len(records))
    return records


__all__ = ["join_origin", "route_for", "scan_storage_inventory", "to_lastmod"]
