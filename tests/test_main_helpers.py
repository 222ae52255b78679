import asyncio
import threading
from datetime import datetime, timezone
import xml.etree.ElementTree as ET

import httpx
import pytest

from sitemap_sync import liveness, main as cli
from sitemap_sync.config import EnvironmentProfile, Settings
from sitemap_sync.errors import ConfigurationError, FetchError
from sitemap_sync.models import BlobDescriptor
from sitemap_sync.render import SITEMAP_NAMESPACE

ORIGIN = "https://site.example/"

UPSTREAM_BODY = b"""<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://edge.example/test/foo</loc><lastmod>2024-01-01</lastmod></url>
  <url><loc>https://edge.example/docs/bar</loc><lastmod>2024-01-01</lastmod></url>
  <url><loc>https://edge.example/docs/a/</loc><lastmod>2024-02-02</lastmod></url>
  <url><loc>https://edge.example/docs/moved</loc><lastmod>2024-01-01</lastmod></url>
</urlset>"""


class DummyResponse:
    def __init__(self, status_code: int, content: bytes = b"", reason: str = "OK") -> None:
        self.status_code = status_code
        self.content = content
        self.reason = reason


class DummySession:
    def __init__(self, response: DummyResponse) -> None:
        self.response = response

    def get(self, url, **kwargs):
        return self.response


class FakeStore:
    def __init__(self, names: list[str]) -> None:
        self.names = names
        self.calls: list[str] = []
        self.objects: dict[str, bytes] = {}

    async def iter_blobs(self, prefix: str = ""):
        self.calls.append(f"list:{prefix}")
        for name in self.names:
            if name.startswith(prefix):
                yield BlobDescriptor(name=name, last_modified=datetime(2023, 5, 5, 10, tzinfo=timezone.utc))

    async def enable_static_website(self, index_document: str, error_document: str = "") -> None:
        self.calls.append(f"website:{index_document}")

    async def ensure_container(self, access_policy=None) -> None:
        self.calls.append(f"container:{access_policy}")

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        self.calls.append(f"upload:{path}")
        self.objects[path] = data


def _settings(**overrides) -> Settings:
    values = dict(
        profile=EnvironmentProfile(
            name="test",
            site_origin=ORIGIN,
            upstream_sitemap_url="https://edge.example/sitemap.xml",
        ),
        connection_string="UseDevelopmentStorage=true",
        container="$web",
        enable_static_website=True,
        index_document="index.html",
        error_document="404.html",
        public_access_policy="blob",
        source="",
        target="/",
        excluded_sites=frozenset({"secured"}),
        fetch_timeout=5.0,
        fetch_attempts=1,
        probe_concurrency=3,
        probe_timeout=1.0,
    )
    values.update(overrides)
    return Settings(**values)


def _probe_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(301 if request.url.path == "/docs/moved" else 200)


def _run(settings, store, session, **kwargs):
    async def _inner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(_probe_handler)) as client:
            return await cli.run_pipeline(settings, store, session=session, client=client, **kwargs)

    return asyncio.run(_inner())


def _published_pairs(payload: bytes) -> list[tuple[str, str]]:
    ns = {"sm": SITEMAP_NAMESPACE}
    return [
        (url.findtext("sm:loc", namespaces=ns), url.findtext("sm:lastmod", namespaces=ns))
        for url in ET.fromstring(payload).findall("sm:url", ns)
    ]


def test_pipeline_merges_filters_and_publishes() -> None:
    store = FakeStore(["secured/a/index.html", "docs/a/index.html", "docs/a/app.js", "docs/404/index.html"])

    result = _run(_settings(), store, DummySession(DummyResponse(200, UPSTREAM_BODY)))

    assert result is not None
    assert result.object_path == "sitemap.xml"
    assert store.calls[:2] == ["website:index.html", "container:blob"]
    assert store.calls[-1] == "upload:sitemap.xml"
    # External records come first and duplicates across sources are kept.
    assert _published_pairs(store.objects["sitemap.xml"]) == [
        ("https://site.example/docs/bar", "2024-01-01"),
        ("https://site.example/docs/a/", "2024-02-02"),
        ("https://site.example/docs/a/", "2023-05-05"),
    ]
    assert result.record_count == 3


def test_dry_run_skips_storage_writes(tmp_path) -> None:
    store = FakeStore(["docs/a/index.html"])
    output = tmp_path / "out" / "sitemap.xml"

    result = _run(
        _settings(target="/blog/"),
        store,
        DummySession(DummyResponse(200, UPSTREAM_BODY)),
        dry_run=True,
        output=output,
    )

    assert result is None
    assert store.objects == {}
    assert store.calls == ["list:"]
    assert ("https://site.example/docs/a/", "2023-05-05") in _published_pairs(output.read_bytes())


def test_upstream_failure_aborts_before_publish() -> None:
    store = FakeStore(["docs/a/index.html"])

    with pytest.raises(FetchError):
        _run(_settings(), store, DummySession(DummyResponse(500, reason="Server Error")))

    assert store.objects == {}


def test_source_prefix_limits_listing() -> None:
    store = FakeStore(["docs/a/index.html", "blog/b/index.html"])

    _run(_settings(source="blog/"), store, DummySession(DummyResponse(200, UPSTREAM_BODY)))

    assert "list:blog/" in store.calls
    locs = [loc for loc, _ in _published_pairs(store.objects["sitemap.xml"])]
    assert "https://site.example/blog/b/" in locs
    assert "https://site.example/docs/a/" in locs  # from the upstream sitemap


def test_parse_args_maps_overrides() -> None:
    args = cli.parse_args(["--env", "dev", "--target", "/blog/", "--concurrency", "5", "--dry-run"])
    overrides = cli._cli_overrides(args)

    assert overrides["environment"] == "dev"
    assert overrides["target"] == "/blog/"
    assert overrides["probe.concurrency"] == 5
    assert overrides["storage.enable_static_website"] is None
    assert args.dry_run is True


def test_format_elapsed() -> None:
    assert cli.format_elapsed(65) == "1m 05s"
    assert cli.format_elapsed(0.4) == "0m 00s"
    assert cli.format_elapsed(600) == "10m 00s"


def test_main_exits_non_zero_on_configuration_error(monkeypatch) -> None:
    async def _boom(argv=None):
        raise ConfigurationError("Connection string must be specified!")

    monkeypatch.setattr(cli, "_async_main", _boom)

    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 1


def test_pipeline_builds_client_from_liveness_settings(monkeypatch) -> None:
    real_client = httpx.AsyncClient
    captured: dict = {}

    def _client_factory(**kwargs):
        captured.update(kwargs)
        return real_client(transport=httpx.MockTransport(_probe_handler), **kwargs)

    monkeypatch.setattr(liveness.httpx, "AsyncClient", _client_factory)
    store = FakeStore(["docs/a/index.html"])

    result = asyncio.run(
        cli.run_pipeline(
            _settings(probe_timeout=2.5),
            store,
            session=DummySession(DummyResponse(200, UPSTREAM_BODY)),
        )
    )

    assert result is not None
    assert captured == {"timeout": 2.5, "follow_redirects": False}


class BlockingSession:
    """Holds the upstream fetch open until the storage listing has started."""

    def __init__(self) -> None:
        self.listing_started = threading.Event()
        self.listing_seen_during_fetch = False

    def get(self, url, **kwargs):
        self.listing_seen_during_fetch = self.listing_started.wait(timeout=5)
        return DummyResponse(200, UPSTREAM_BODY)


def test_fetch_and_listing_overlap() -> None:
    session = BlockingSession()

    async def _listing():
        session.listing_started.set()
        yield BlobDescriptor(name="docs/a/index.html", last_modified=datetime(2023, 5, 5, tzinfo=timezone.utc))

    records = asyncio.run(cli.collect_records(_settings(), _listing(), session=session))

    assert session.listing_seen_during_fetch is True
    assert records[-1].loc == "https://site.example/docs/a/"


def test_fetch_failure_cancels_listing() -> None:
    state = {"closed": False}

    async def _listing():
        try:
            yield BlobDescriptor(name="docs/a/index.html", last_modified=datetime(2023, 5, 5, tzinfo=timezone.utc))
            await asyncio.sleep(3600)
        finally:
            state["closed"] = True

    async def _inner():
        with pytest.raises(FetchError):
            await cli.collect_records(
                _settings(),
                _listing(),
                session=DummySession(DummyResponse(500, reason="Server Error")),
            )
        return state["closed"]

    assert asyncio.run(_inner()) is True
