"""Fetch the edge site's sitemap and map it onto the canonical origin."""

from __future__ import annotations

import asyncio
from typing import Optional
from urllib.parse import urlsplit, urlunsplit
import xml.etree.ElementTree as ET

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from sitemap_sync.errors import FetchError, MalformedRecordError, ParseError
from sitemap_sync.logging_config import get_logger
from sitemap_sync.matcher import ExclusionMatcher
from sitemap_sync.models import PageRecord

LOGGER = get_logger(__name__)

USER_AGENT = "sitemap-sync/1.0"
RETRY_WAIT = wait_exponential(multiplier=0.5, max=10)


def _local_name(tag: str) -> str:
    return tag.split("}", 1)[-1] if "}" in tag else tag


def rewrite_origin(loc: str, site_origin: str) -> str:
    """Swap scheme and host of ``loc`` for ``site_origin``, keeping the rest verbatim."""

    parts = urlsplit(loc)
    remainder = urlunsplit(("", "", parts.path or "/", parts.query, parts.fragment))
    return site_origin.rstrip("/") + remainder


def _download(session: requests.Session, url: str, timeout: float, attempts: int) -> requests.Response:
    retrying = Retrying(
        wait=RETRY_WAIT,
        stop=stop_after_attempt(attempts),
        retry=retry_if_exception_type(requests.RequestException),
        reraise=True,
    )
    try:
        response = retrying(
            session.get,
            url,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )
    except requests.RequestException as exc:
        raise FetchError(f"Failed to fetch sitemap: {exc}", url=url) from exc

    if not 200 <= response.status_code < 300:
        raise FetchError(
            f"Failed to fetch sitemap: {response.reason or 'HTTP error'}",
            url=url,
            status=response.status_code,
        )
    return response


def parse_sitemap(content: bytes, *, url: Optional[str] = None) -> list[tuple[str, str]]:
    """Return ``(loc, lastmod)`` pairs from a ``urlset`` document."""

    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ParseError(f"Sitemap is not valid XML: {exc}", url=url) from exc

    if _local_name(root.tag) != "urlset":
        raise ParseError(url=url)
    entries = root.findall("{*}url")
    if not entries:
        raise ParseError(url=url)

    pairs: list[tuple[str, str]] = []
    for entry in entries:
        loc = (entry.findtext("{*}loc") or "").strip()
        lastmod = (entry.findtext("{*}lastmod") or "").strip()
        if not loc:
            LOGGER.warning("Skipping sitemap entry without <loc> | source=%s", url)
            continue
        pairs.append((loc, lastmod))
    return pairs


def fetch_external_sitemap(
    source_url: str,
    site_origin: str,
    matcher: ExclusionMatcher,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
    attempts: int = 3,
) -> list[PageRecord]:
    """Download, parse, filter and re-host the upstream sitemap."""

    owned = session is None
    http = session or requests.Session()
    try:
        response = _download(http, source_url, timeout, attempts)
    finally:
        if owned:
            http.close()

    records: list[PageRecord] = []
    excluded = 0
    for loc, lastmod in parse_sitemap(response.content, url=source_url):
        try:
            include = matcher.should_include(loc)
        except MalformedRecordError as exc:
            LOGGER.warning("Dropping malformed sitemap entry: %s", exc)
            continue
        if not include:
            excluded += 1
            LOGGER.debug("Excluded by pattern: %s", loc)
            continue
        records.append(PageRecord(loc=rewrite_origin(loc, site_origin), lastmod=lastmod))

    LOGGER.info(
        "External sitemap parsed | source=%s kept=%d excluded=%d",
        source_url,
        len(records),
        excluded,
    )
    return records


async def fetch_external_sitemap_async(
    source_url: str,
    site_origin: str,
    matcher: ExclusionMatcher,
    **kwargs,
) -> list[PageRecord]:
    """Run the blocking fetch in a worker thread so it overlaps other I/O."""

    return await asyncio.to_thread(fetch_external_sitemap, source_url, site_origin, matcher, **kwargs)


__all__ = [
    "fetch_external_sitemap",
    "fetch_external_sitemap_async",
    "parse_sitemap",
    "rewrite_origin",
]
