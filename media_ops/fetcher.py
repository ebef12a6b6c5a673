"""Streaming download of remote assets into scratch storage.

Bodies are written chunk by chunk as they arrive; nothing is buffered
whole in memory.  Any transport failure, non-2xx status, oversize body
or truncated stream surfaces as ``FetchError``.  The partially written
file is left for the caller's scratch scope to delete.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import httpx

from .concurrency import gather_all
from .errors import FetchError
from .models import Asset
from .scratch import ScratchScope

logger = logging.getLogger(__name__)


class AssetFetcher:
    """Downloads URLs with a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = 120.0,
        chunk_size: int = 1024 * 1024,
        max_bytes: int = 0,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.max_bytes = max_bytes

    async def fetch(self, url: str, dest: Path) -> Asset:
        """Stream *url* into *dest* and return the materialized ``Asset``."""
        logger.info("Downloading %s → %s", url, dest.name)
        written = 0
        try:
            async with self.client.stream("GET", url, timeout=self.timeout) as response:
                if not response.is_success:
                    raise FetchError(url, f"HTTP {response.status_code}")

                expected = response.headers.get("content-length")
                if response.headers.get("content-encoding", "identity") != "identity":
                    # Decoded size differs from the wire length.
                    expected = None
                with dest.open("wb") as f:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        written += len(chunk)
                        if self.max_bytes and written > self.max_bytes:
                            raise FetchError(
                                url, f"body exceeds {self.max_bytes} bytes",
                            )
                        f.write(chunk)

                if expected is not None and expected.isdigit() and int(expected) != written:
                    raise FetchError(
                        url, f"stream ended after {written} of {expected} bytes",
                    )
        except httpx.HTTPError as exc:
            raise FetchError(url, str(exc) or type(exc).__name__) from exc
        except OSError as exc:
            raise FetchError(url, f"could not write scratch file: {exc}") from exc

        if written == 0:
            raise FetchError(url, "empty response body")

        logger.info("Downloaded %d bytes from %s", written, url)
        return Asset(url=url, path=dest, size=written)

    async def fetch_all(
        self,
        urls: Sequence[str],
        scope: ScratchScope,
        suffixes: Sequence[str] | None = None,
    ) -> list[Asset]:
        """Fetch every URL concurrently into paths owned by *scope*.

        Order is preserved.  The first failure cancels the remaining
        downloads; files already allocated are released by the scope.
        """
        if suffixes is None:
            suffixes = [".input"] * len(urls)
        dests = [scope.allocate(suffix) for suffix in suffixes]
        return await gather_all(
            self.fetch(url, dest) for url, dest in zip(urls, dests)
        )
