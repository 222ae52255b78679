"""Value types passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sitemap_sync.errors import ProbeError

DEAD_STATUSES = frozenset({404, 301, 302})


@dataclass(frozen=True)
class PageRecord:
    """One sitemap entry: canonical URL plus date-only modification stamp."""

    loc: str
    lastmod: str = ""


@dataclass(frozen=True)
class BlobDescriptor:
    """Name and modification time of one object in the storage listing."""

    name: str
    last_modified: datetime


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single liveness probe."""

    record: PageRecord
    status: Optional[int] = None
    error: Optional[ProbeError] = None

    @property
    def alive(self) -> bool:
        if self.error is not None or self.status is None:
            return False
        return self.status not in DEAD_STATUSES


@dataclass(frozen=True)
class PublishResult:
    """Where the sitemap was written and how large it was."""

    object_path: str
    record_count: int
    byte_count: int


__all__ = ["BlobDescriptor", "DEAD_STATUSES", "PageRecord", "ProbeResult", "PublishResult"]
