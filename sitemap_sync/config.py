"""Configuration loading for the sitemap sync pipeline."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
import os
from pathlib import Path
import re
from typing import Any, Mapping, Pattern

import yaml

from sitemap_sync.errors import ConfigurationError
from sitemap_sync.logging_config import get_logger
from sitemap_sync.matcher import EXCLUDED_SITES

LOGGER = get_logger(__name__)

STATIC_WEBSITE_CONTAINER = "$web"

DEFAULT_CONFIG: dict[str, Any] = {
    "environment": "prod",
    "storage": {
        "connection_string": "",
        "container": "",
        "enable_static_website": False,
        "index_document": "index.html",
        "error_document": "",
        "public_access_policy": "",
    },
    "source": "",
    "target": "",
    "excluded_sites": sorted(EXCLUDED_SITES),
    "fetch": {"timeout": 30.0, "attempts": 3},
    "probe": {"concurrency": 10, "timeout": 10.0},
}

# Environment variable -> dotted config key.
ENV_OVERRIDES: dict[str, str] = {
    "DEPLOY_ENVIRONMENT": "environment",
    "AZURE_STORAGE_CONNECTION_STRING": "storage.connection_string",
    "SITEMAP_SYNC_CONTAINER": "storage.container",
    "SITEMAP_SYNC_STATIC_WEBSITE": "storage.enable_static_website",
    "SITEMAP_SYNC_ACCESS_POLICY": "storage.public_access_policy",
    "SITEMAP_SYNC_SOURCE": "source",
    "SITEMAP_SYNC_TARGET": "target",
    "SITEMAP_SYNC_EXCLUDED_SITES": "excluded_sites",
    "SITEMAP_SYNC_PROBE_CONCURRENCY": "probe.concurrency",
    "SITEMAP_SYNC_PROBE_TIMEOUT": "probe.timeout",
}


@dataclass(frozen=True)
class EnvironmentProfile:
    """Hostnames and extra exclusions for one deploy environment."""

    name: str
    site_origin: str
    upstream_sitemap_url: str
    extra_exclusions: tuple[Pattern[str], ...] = ()


ENVIRONMENTS: dict[str, EnvironmentProfile] = {
    "dev": EnvironmentProfile(
        name="dev",
        site_origin="https://developer-stage.adobe.com/",
        upstream_sitemap_url="https://main--adp-devsite-stage--adobedocs.aem.page/sitemap.xml",
    ),
    "prod": EnvironmentProfile(
        name="prod",
        site_origin="https://developer.adobe.com/",
        upstream_sitemap_url="https://main--adp-devsite--adobedocs.aem.page/sitemap.xml",
        # Pre-release reference docs are only published on stage.
        extra_exclusions=(re.compile(r"/reference/preview(/|$)"),),
    ),
}


@dataclass(frozen=True)
class Settings:
    """Resolved, validated settings for one run."""

    profile: EnvironmentProfile
    connection_string: str
    container: str
    enable_static_website: bool
    index_document: str
    error_document: str
    public_access_policy: str | None
    source: str
    target: str
    excluded_sites: frozenset[str]
    fetch_timeout: float
    fetch_attempts: int
    probe_concurrency: int
    probe_timeout: float


def _deep_merge(default: Any, override: Any) -> Any:
    if not isinstance(default, dict) or not isinstance(override, dict):
        return deepcopy(override)

    merged: dict[str, Any] = deepcopy(default)
    for key, value in override.items():
        # An empty YAML section (`probe:`) keeps the defaults for that section.
        if value is None and isinstance(merged.get(key), dict):
            continue
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _set_dotted(config: dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    node = config
    for key in parents:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]
    node[leaf] = value


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in {"", "0", "false", "no", "off"}


def _parse_sites(value: Any) -> frozenset[str]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise ConfigurationError("excluded_sites must be a list or comma-separated string.")
    return frozenset(str(item).strip().strip("/") for item in items if str(item).strip().strip("/"))


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Merge defaults, an optional YAML file and environment overrides."""

    data: dict[str, Any] = {}
    if path is not None:
        if path.exists():
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            if not isinstance(data, dict):
                raise ConfigurationError("Configuration file must contain a mapping.", path=str(path))
        else:
            LOGGER.warning("Configuration file %s not found; using defaults", path)

    merged = _deep_merge(DEFAULT_CONFIG, data) if data else deepcopy(DEFAULT_CONFIG)

    env = os.environ if environ is None else environ
    for name, dotted in ENV_OVERRIDES.items():
        value = env.get(name)
        if value:
            _set_dotted(merged, dotted, value)
    return merged


def apply_overrides(config: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of config with non-None dotted-key overrides applied."""

    updated = deepcopy(config)
    for dotted, value in overrides.items():
        if value is not None:
            _set_dotted(updated, dotted, value)
    return updated


def resolve_environment(name: Any) -> EnvironmentProfile:
    key = str(name or "").strip().lower()
    profile = ENVIRONMENTS.get(key)
    if profile is None:
        raise ConfigurationError(
            f"Unknown deploy environment {name!r}; expected one of {', '.join(sorted(ENVIRONMENTS))}."
        )
    return profile


def resolve_settings(config: Mapping[str, Any]) -> Settings:
    """Validate a merged config mapping into Settings."""

    profile = resolve_environment(config.get("environment"))
    storage = config.get("storage") or {}

    connection_string = str(storage.get("connection_string") or "").strip()
    if not connection_string:
        raise ConfigurationError("Connection string must be specified!")

    enable_static_website = _parse_bool(storage.get("enable_static_website", False))
    container = STATIC_WEBSITE_CONTAINER if enable_static_website else str(storage.get("container") or "").strip()
    if not container:
        raise ConfigurationError("Either specify a container name, or enable the static website!")

    fetch = config.get("fetch") or {}
    probe = config.get("probe") or {}
    try:
        fetch_timeout = float(fetch.get("timeout", 30.0))
        fetch_attempts = max(1, int(fetch.get("attempts", 3)))
        probe_concurrency = int(probe.get("concurrency", 10))
        probe_timeout = float(probe.get("timeout", 10.0))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc
    if probe_concurrency <= 0:
        raise ConfigurationError("probe.concurrency must be positive.")
    if probe_timeout <= 0 or fetch_timeout <= 0:
        raise ConfigurationError("Timeouts must be positive.")

    return Settings(
        profile=profile,
        connection_string=connection_string,
        container=container,
        enable_static_website=enable_static_website,
        index_document=str(storage.get("index_document") or "index.html"),
        error_document=str(storage.get("error_document") or ""),
        public_access_policy=str(storage.get("public_access_policy") or "") or None,
        source=str(config.get("source") or ""),
        target=str(config.get("target") or ""),
        excluded_sites=_parse_sites(config.get("excluded_sites", sorted(EXCLUDED_SITES))),
        fetch_timeout=fetch_timeout,
        fetch_attempts=fetch_attempts,
        probe_concurrency=probe_concurrency,
        probe_timeout=probe_timeout,
    )


__all__ = [
    "DEFAULT_CONFIG",
    "ENVIRONMENTS",
    "EnvironmentProfile",
    "Settings",
    "apply_overrides",
    "load_config",
    "resolve_environment",
    "resolve_settings",
]
