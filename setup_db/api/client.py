"""
Async client for the NuGet V3 registration and flat-container endpoints,
with bounded concurrency, retries, rate limiting and circuit breaker protection.
"""

import asyncio
import json
import logging
import time
import urllib.parse
from typing import Any, Dict, List, Optional

import aiohttp

from setup_db.exceptions import (
    PackageNotFoundError,
    RemoteFetchError,
    RetriesExhaustedError,
)
from setup_db.models.config import ResolverConfig
from setup_db.models.package import IndexEntry
from setup_db.utils.circuit_breaker import CircuitBreaker, is_transient

from .rate_limiter import AdaptiveRateLimiter
from .versions import select_latest

log = logging.getLogger(__name__)

USER_AGENT = "setup-db (+https://www.nuget.org)"


def _quote(segment: str) -> str:
    return urllib.parse.quote(segment.strip().lower(), safe="")


def _retry_after(response: aiohttp.ClientResponse) -> Optional[float]:
    try:
        return float(response.headers.get("Retry-After", ""))
    except ValueError:
        return None


class RemoteIndex:
    """
    Looks up package versions and downloads manifests and archives.

    Features:
    - Shared connection pool sized from `max_workers`
    - Semaphore capping simultaneous requests
    - Exponential backoff on timeouts, connection errors, 429 and 5xx
    - Adaptive rate limiting and a circuit breaker for a failing index
    """

    def __init__(self, config: ResolverConfig):
        self.index_base_url = config.index_base_url
        self.flat_base_url = config.flat_base_url
        self.max_workers = config.max_workers
        self.max_attempts = config.max_attempts
        self.base_delay = config.base_delay
        self.request_timeout = config.request_timeout

        self._session: Optional[aiohttp.ClientSession] = None
        self._semaphore = asyncio.Semaphore(config.max_workers)
        self._rate_limiter = AdaptiveRateLimiter()
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=max(5, config.max_attempts * 2),
            recovery_timeout=30,
        )

    async def __aenter__(self) -> "RemoteIndex":
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_workers * 2,
                limit_per_host=self.max_workers,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.request_timeout, sock_connect=15
                ),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    # URL templates
    def registration_url(self, name: str) -> str:
        return f"{self.index_base_url}/{_quote(name)}/index.json"

    def manifest_url(self, name: str, version: str) -> str:
        pkg = _quote(name)
        return f"{self.flat_base_url}/{pkg}/{_quote(version)}/{pkg}.nuspec"

    def archive_url(self, name: str, version: str) -> str:
        pkg, ver = _quote(name), _quote(version)
        return f"{self.flat_base_url}/{pkg}/{ver}/{pkg}.{ver}.nupkg"

    async def _request_once(self, url: str) -> bytes:
        """Performs one GET, mapping every failure onto RemoteFetchError."""
        async with self._circuit_breaker:
            async with self._semaphore:
                await self._rate_limiter.acquire()
                start_time = time.monotonic()
                try:
                    async with self._session.get(url, allow_redirects=True) as r:
                        if r.status == 429:
                            await self._rate_limiter.on_429(_retry_after(r))
                        if r.status >= 400:
                            raise RemoteFetchError(url, r.status)
                        body = await r.read()
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    reason = str(e) or type(e).__name__
                    raise RemoteFetchError(
                        url, None, f"Request to {url} failed: {reason}"
                    ) from e
                log.debug(
                    f"GET {url} -> {r.status} ({len(body)} bytes, "
                    f"{(time.monotonic() - start_time) * 1000:.0f} ms)"
                )
                return body

    async def get(self, url: str) -> bytes:
        """
        Downloads a URL, retrying transient failures with exponential backoff.

        Raises:
            RemoteFetchError: On a non-retryable HTTP status (e.g. 404).
            RetriesExhaustedError: When every attempt failed transiently.
            CircuitBreakerError: When the index has been failing repeatedly.
        """
        await self._initialize_session()
        last_error: Optional[RemoteFetchError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._request_once(url)
            except RemoteFetchError as e:
                if not is_transient(e):
                    raise
                last_error = e
                log.debug(
                    f"Attempt {attempt}/{self.max_attempts} for {url} failed: {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        raise RetriesExhaustedError(
            url, last_error.status, self.max_attempts, str(last_error)
        ) from last_error

    async def _get_json(self, url: str, name: str) -> Dict[str, Any]:
        body = await self.get(url)
        try:
            data = json.loads(body)
        except ValueError as e:
            raise PackageNotFoundError(
                f"Version listing for '{name}' is not valid JSON."
            ) from e
        if not isinstance(data, dict):
            raise PackageNotFoundError(f"Version listing for '{name}' is malformed.")
        return data

    async def _listing_entries(self, name: str) -> List[IndexEntry]:
        index = await self._get_json(self.registration_url(name), name)
        pages = [p for p in index.get("items") or [] if isinstance(p, dict)]

        # Large packages only link their pages instead of inlining them
        async def load_page(page: Dict[str, Any]) -> List[Any]:
            if page.get("items") is None and page.get("@id"):
                page = await self._get_json(page["@id"], name)
            return page.get("items") or []

        entries = []
        for leaves in await asyncio.gather(*(load_page(p) for p in pages)):
            for leaf in leaves:
                catalog = leaf.get("catalogEntry") if isinstance(leaf, dict) else None
                if not isinstance(catalog, dict):
                    continue
                version = catalog.get("version")
                if not isinstance(version, str) or not version.strip():
                    continue
                content = leaf.get("packageContent")
                entries.append(
                    IndexEntry(version, content if isinstance(content, str) else None)
                )
        return entries

    async def latest_version(self, name: str) -> IndexEntry:
        """
        Finds the highest version of a package in the registration index.

        Returns:
            The selected entry, including the direct archive URL when listed.

        Raises:
            PackageNotFoundError: If the listing holds no usable version.
        """
        entries = await self._listing_entries(name)
        latest = select_latest(entries)
        if latest is None:
            raise PackageNotFoundError(
                f"Cannot find latest version of package '{name}'."
            )
        log.debug(f"Latest version of {name} is {latest.version}")
        return latest

    async def fetch_manifest(self, name: str, version: str) -> bytes:
        return await self.get(self.manifest_url(name, version))

    async def fetch_archive(
        self, name: str, version: str, download_url: Optional[str] = None
    ) -> bytes:
        return await self.get(download_url or self.archive_url(name, version))
