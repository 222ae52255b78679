"""Azure Blob Storage access used by the sitemap pipeline."""

from __future__ import annotations

from typing import AsyncIterator, Optional

from azure.core.exceptions import AzureError
from azure.storage.blob import ContentSettings, StaticWebsite
from azure.storage.blob.aio import BlobServiceClient

from sitemap_sync.errors import ConfigurationError, PublishError, StorageError
from sitemap_sync.logging_config import get_logger
from sitemap_sync.models import BlobDescriptor

LOGGER = get_logger(__name__)


class BlobStore:
    """Thin async wrapper around one container of a storage account."""

    def __init__(self, service: BlobServiceClient, container: str) -> None:
        self._service = service
        self.container = container
        self._container = service.get_container_client(container)

    @classmethod
    def from_connection_string(cls, connection_string: str, container: str) -> "BlobStore":
        try:
            service = BlobServiceClient.from_connection_string(connection_string)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid storage connection string: {exc}") from exc
        return cls(service, container)

    async def __aenter__(self) -> "BlobStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._service.close()

    async def enable_static_website(self, index_document: str, error_document: str = "") -> None:
        """Turn on static website hosting, keeping existing documents when none are given."""

        try:
            properties = await self._service.get_service_properties()
            current = properties.get("static_website")
            website = StaticWebsite(
                enabled=True,
                index_document=index_document or getattr(current, "index_document", None),
                error_document404_path=error_document or getattr(current, "error_document404_path", None),
            )
            await self._service.set_service_properties(static_website=website)
        except AzureError as exc:
            raise StorageError(f"Unable to enable static website: {exc}") from exc
        LOGGER.info(
            "Static website enabled | index=%s error=%s",
            website.index_document,
            website.error_document404_path,
        )

    async def ensure_container(self, access_policy: Optional[str] = None) -> None:
        """Create the container if missing, otherwise reset its public access level."""

        try:
            if not await self._container.exists():
                await self._container.create_container(public_access=access_policy)
                LOGGER.info("Created container %s | access=%s", self.container, access_policy)
            else:
                await self._container.set_container_access_policy(
                    signed_identifiers={},
                    public_access=access_policy,
                )
                LOGGER.info("Updated access policy on %s | access=%s", self.container, access_policy)
        except AzureError as exc:
            raise StorageError(f"Unable to prepare container: {exc}", path=self.container) from exc

    async def iter_blobs(self, prefix: str = "") -> AsyncIterator[BlobDescriptor]:
        """Yield every object under ``prefix`` one listing page at a time."""

        pager = self._container.list_blobs(name_starts_with=prefix or None).by_page()
        page_number = 0
        try:
            async for page in pager:
                page_number += 1
                async for blob in page:
                    yield BlobDescriptor(name=blob.name, last_modified=blob.last_modified)
                LOGGER.debug(
                    "Listed page %d of %s | more=%s",
                    page_number,
                    self.container,
                    bool(pager.continuation_token),
                )
        except AzureError as exc:
            raise StorageError(f"Unable to list blobs: {exc}", path=prefix or self.container) from exc

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Upload ``data`` to ``path``, replacing any existing object."""

        blob = self._container.get_blob_client(path)
        try:
            await blob.upload_blob(
                data,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
            )
        except AzureError as exc:
            raise PublishError(f"Upload failed: {exc}", path=path) from exc
        LOGGER.info("Uploaded %s to %s with content-type %s", path, self.container, content_type)


__all__ = ["BlobStore"]
