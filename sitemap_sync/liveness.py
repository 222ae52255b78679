"""HEAD-probe candidate URLs and drop the dead or redirected ones."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import httpx

from sitemap_sync.errors import ProbeError
from sitemap_sync.logging_config import get_logger
from sitemap_sync.models import PageRecord, ProbeResult

LOGGER = get_logger(__name__)

DEFAULT_CONCURRENCY = 10
DEFAULT_TIMEOUT = 10.0


async def probe(client: httpx.AsyncClient, record: PageRecord) -> ProbeResult:
    """Issue one non-following HEAD request; never raises for transport errors."""

    try:
        response = await client.head(record.loc, follow_redirects=False)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        return ProbeResult(record=record, error=ProbeError(str(exc) or type(exc).__name__, url=record.loc))
    return ProbeResult(record=record, status=response.status_code)


async def probe_all(
    records: Sequence[PageRecord],
    client: httpx.AsyncClient,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[ProbeResult]:
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _bounded(record: PageRecord) -> ProbeResult:
        async with semaphore:
            return await probe(client, record)

    return list(await asyncio.gather(*(_bounded(record) for record in records)))


async def filter_live(
    records: Sequence[PageRecord],
    client: Optional[httpx.AsyncClient] = None,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[PageRecord]:
    """Return the records whose probe did not report 404, 301, 302 or an error."""

    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=False) as owned:
            results = await probe_all(records, owned, concurrency=concurrency)
    else:
        results = await probe_all(records, client, concurrency=concurrency)

    live: list[PageRecord] = []
    for result in results:
        if result.alive:
            live.append(result.record)
        elif result.error is not None:
            LOGGER.warning("Probe failed, excluding: %s", result.error)
        else:
            LOGGER.info("%s: %s", result.status, result.record.loc)

    LOGGER.info(
        "Liveness filter complete | probed=%d live=%d dropped=%d",
        len(results),
        len(live),
        len(results) - len(live),
    )
    return live


__all__ = ["filter_live", "probe", "probe_all"]
