"""Command-line interface entry point for the sitemap sync pipeline."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
import time
from typing import Any, AsyncIterable, Iterable, Optional, Protocol

import httpx
import requests
from dotenv import load_dotenv

from sitemap_sync.config import Settings, apply_overrides, load_config, resolve_settings
from sitemap_sync.errors import SitemapSyncError
from sitemap_sync.fetcher import fetch_external_sitemap_async
from sitemap_sync.liveness import filter_live
from sitemap_sync.logging_config import get_logger, set_level
from sitemap_sync.matcher import EXTERNAL_EXCLUDED_PATTERNS, ExclusionMatcher
from sitemap_sync.models import BlobDescriptor, PageRecord, PublishResult
from sitemap_sync.render import publish_sitemap, render_sitemap, sitemap_object_path
from sitemap_sync.scanner import scan_storage_inventory
from sitemap_sync.storage import BlobStore

LOGGER = get_logger(__name__)


class SitemapStore(Protocol):
    def iter_blobs(self, prefix: str = "") -> AsyncIterable[BlobDescriptor]:
        ...

    async def enable_static_website(self, index_document: str, error_document: str = "") -> None:
        ...

    async def ensure_container(self, access_policy: Optional[str] = None) -> None:
        ...

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        ...


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the application."""

    parser = argparse.ArgumentParser(
        description="Build a link-validated sitemap from the edge sitemap and published pages."
    )
    parser.add_argument("--config", type=Path, help="Optional YAML configuration file.")
    parser.add_argument(
        "--environment",
        "--env",
        dest="environment",
        help="Deploy environment selecting the canonical site origin (dev or prod).",
    )
    parser.add_argument("--connection-string", help="Storage account connection string.")
    parser.add_argument("--container", help="Blob container holding the published site.")
    parser.add_argument(
        "--enable-static-website",
        action="store_true",
        default=None,
        help="Enable static website hosting and use the $web container.",
    )
    parser.add_argument("--index-document", help="Static website index document (default: index.html).")
    parser.add_argument("--error-document", help="Static website 404 document.")
    parser.add_argument("--access-policy", help="Public access level for the container (blob or container).")
    parser.add_argument("--source", help="Only scan objects whose names start with this prefix.")
    parser.add_argument("--target", help="Prefix under which sitemap.xml is written.")
    parser.add_argument("--concurrency", type=int, help="Maximum concurrent liveness probes.")
    parser.add_argument("--timeout", type=float, help="Per-probe timeout in seconds.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Build the sitemap without changing storage.",
    )
    parser.add_argument("--output", type=Path, help="Also write the rendered sitemap to this file.")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Override LOG_LEVEL for this run.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "environment": args.environment,
        "storage.connection_string": args.connection_string,
        "storage.container": args.container,
        "storage.enable_static_website": args.enable_static_website,
        "storage.index_document": args.index_document,
        "storage.error_document": args.error_document,
        "storage.public_access_policy": args.access_policy,
        "source": args.source,
        "target": args.target,
        "probe.concurrency": args.concurrency,
        "probe.timeout": args.timeout,
    }


def format_elapsed(seconds: float) -> str:
    minutes, remainder = divmod(round(seconds), 60)
    return f"{minutes}m {remainder:02d}s"


def build_matcher(settings: Settings) -> ExclusionMatcher:
    return ExclusionMatcher(EXTERNAL_EXCLUDED_PATTERNS).extend(settings.profile.extra_exclusions)


async def collect_records(
    settings: Settings,
    listing: AsyncIterable[BlobDescriptor],
    *,
    session: Optional[requests.Session] = None,
) -> list[PageRecord]:
    """Fetch the external sitemap and scan storage concurrently; external records first."""

    profile = settings.profile
    fetch_task = asyncio.create_task(
        fetch_external_sitemap_async(
            profile.upstream_sitemap_url,
            profile.site_origin,
            build_matcher(settings),
            session=session,
            timeout=settings.fetch_timeout,
            attempts=settings.fetch_attempts,
        )
    )
    scan_task = asyncio.create_task(
        scan_storage_inventory(listing, profile.site_origin, settings.excluded_sites)
    )
    try:
        external, inventory = await asyncio.gather(fetch_task, scan_task)
    except BaseException:
        # Either failure is fatal; stop the sibling before the store is closed.
        for task in (fetch_task, scan_task):
            task.cancel()
        await asyncio.gather(fetch_task, scan_task, return_exceptions=True)
        raise
    return [*external, *inventory]


async def run_pipeline(
    settings: Settings,
    store: SitemapStore,
    *,
    dry_run: bool = False,
    output: Optional[Path] = None,
    session: Optional[requests.Session] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[PublishResult]:
    """Run one full reconcile, validate and publish cycle."""

    if dry_run:
        LOGGER.info("Dry run: skipping static website and container setup")
    else:
        if settings.enable_static_website:
            await store.enable_static_website(settings.index_document, settings.error_document)
        await store.ensure_container(settings.public_access_policy)

    candidates = await collect_records(settings, store.iter_blobs(settings.source), session=session)
    LOGGER.info("Collected %d candidate URLs", len(candidates))

    live = await filter_live(
        candidates,
        client,
        concurrency=settings.probe_concurrency,
        timeout=settings.probe_timeout,
    )

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(render_sitemap(live))
        LOGGER.info("Wrote local sitemap copy to %s", output)

    if dry_run:
        LOGGER.info(
            "Dry run: would publish %d records to %s",
            len(live),
            sitemap_object_path(settings.target),
        )
        return None
    return await publish_sitemap(live, settings.target, store)


async def _async_main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    if args.log_level:
        set_level(args.log_level)
    load_dotenv()

    config = apply_overrides(load_config(args.config), _cli_overrides(args))
    settings = resolve_settings(config)
    LOGGER.info(
        "Starting sitemap sync | environment=%s origin=%s container=%s target=%s dry_run=%s",
        settings.profile.name,
        settings.profile.site_origin,
        settings.container,
        settings.target or "/",
        args.dry_run,
    )

    start = time.monotonic()
    async with BlobStore.from_connection_string(settings.connection_string, settings.container) as store:
        await run_pipeline(settings, store, dry_run=args.dry_run, output=args.output)
    LOGGER.info("Sitemap sync took: %s", format_elapsed(time.monotonic() - start))


def main(argv: Iterable[str] | None = None) -> None:
    try:
        asyncio.run(_async_main(argv))
    except SitemapSyncError as exc:
        LOGGER.exception("Sitemap sync failed: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:  # pragma: no cover - interactive safety
        LOGGER.info("Interrupted by user")
        raise SystemExit(130)
    except Exception as exc:
        LOGGER.exception("Unexpected error during sitemap sync")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
