"""
Staleness detection for entries backed by a mutable resource.

Validation compares the entry's stored fingerprint (mtime + size) with the
resource's current one. That is a metadata-only check; the content hash kept
on each entry serves callers that need to know whether the bytes really
changed (see :meth:`StalenessValidator.has_changed`).

A probe that raises (for example because the file was deleted) counts as
"stale". The failure is recorded and the read falls through to a normal
reload, which surfaces the loader's own error if the resource is gone.
"""

from __future__ import annotations

import asyncio
import inspect
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

from ..error_handling import ErrorCategory, ErrorCollector
from ..logging_config import get_logger
from ..utils import hash_content
from .models import CacheEntry, Fingerprint

FingerprintProbe = Callable[[str], "Fingerprint | Awaitable[Fingerprint]"]


def stat_fingerprint(path: str | Path) -> Fingerprint:
    """Fingerprint a file from its ``os.stat`` metadata."""
    st = os.stat(path)
    return Fingerprint(mtime=st.st_mtime, size=st.st_size)


class StalenessValidator:
    """Checks cached entries against the current state of their resource."""

    def __init__(
        self,
        probe: FingerprintProbe,
        *,
        cache_name: str = "cache",
        errors: ErrorCollector | None = None,
        offload_sync_probe: bool = True,
    ):
        self.probe = probe
        self.cache_name = cache_name
        self.errors = errors
        # run blocking probes (os.stat) in a worker thread
        self.offload_sync_probe = offload_sync_probe
        self.logger = get_logger()

    async def current_fingerprint(self, key: str) -> Fingerprint:
        if inspect.iscoroutinefunction(self.probe):
            return await self.probe(key)
        if self.offload_sync_probe:
            result = await asyncio.to_thread(self.probe, key)
        else:
            result = self.probe(key)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def is_valid(self, entry: CacheEntry) -> bool:
        """True if the entry's fingerprint still matches its resource."""
        if entry.fingerprint is None:
            # nothing to compare against; TTL alone governs this entry
            return True
        try:
            current = await self.current_fingerprint(entry.key)
        except Exception as e:
            self.logger.log_recovered_error(self.cache_name, "validate", str(e), key=entry.key)
            if self.errors is not None:
                self.errors.add_error(e, category=ErrorCategory.STALENESS, key=entry.key)
            return False
        return current == entry.fingerprint

    @staticmethod
    def has_changed(entry: CacheEntry, current_value: object) -> bool:
        """Cross-check by content hash, independent of metadata."""
        return hash_content(current_value) != entry.content_hash
