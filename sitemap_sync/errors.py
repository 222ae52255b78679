"""Custom exception types for the sitemap sync pipeline."""

from __future__ import annotations

from typing import Optional


class SitemapSyncError(Exception):
    """Base class for every error raised by the pipeline."""

    default_message = "Sitemap sync failed."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        url: Optional[str] = None,
        path: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        self.message = message or self.default_message
        self.url = url
        self.path = path
        self.status = status
        super().__init__(self.message)

    def __str__(self) -> str:
        context_parts: list[str] = []
        if self.url:
            context_parts.append(f"url={self.url}")
        if self.path:
            context_parts.append(f"path={self.path}")
        if self.status is not None:
            context_parts.append(f"status={self.status}")
        context = ", ".join(context_parts)
        return f"{self.message} ({context})" if context else self.message


class ConfigurationError(SitemapSyncError):
    """Raised when a required setting is missing or invalid."""

    default_message = "Invalid configuration."


class FetchError(SitemapSyncError):
    """Raised when the upstream sitemap cannot be retrieved."""

    default_message = "Failed to fetch sitemap."


class ParseError(SitemapSyncError):
    """Raised when the upstream sitemap lacks the expected structure."""

    default_message = "No URLs found in sitemap."


class MalformedRecordError(SitemapSyncError):
    """Raised when a single URL cannot be parsed for exclusion matching."""

    default_message = "Malformed URL."


class ProbeError(SitemapSyncError):
    """Describes a liveness probe that failed at the transport level."""

    default_message = "Liveness probe failed."


class StorageError(SitemapSyncError):
    """Raised when a storage listing or setup call fails."""

    default_message = "Storage operation failed."


class PublishError(SitemapSyncError):
    """Raised when the sitemap upload fails."""

    default_message = "Failed to publish sitemap."
