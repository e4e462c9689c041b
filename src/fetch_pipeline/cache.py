"""
RFC 7234 response caching for GET/HEAD requests.

The ``cache`` option accepts a CacheStore or any MutableMapping. Store
failures surface as CacheError.
"""
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

import httpx

from .errors import CacheError, ConfigurationError

logger = logging.getLogger("fetch_pipeline.cache")

CACHEABLE_METHODS = ("GET", "HEAD")
CACHEABLE_STATUSES = (200, 203, 204, 206, 300, 301, 404, 405, 410, 414, 501)
MAX_TTL_SECONDS = 86400.0


@dataclass
class CacheControlDirectives:
    """Parsed Cache-Control directives."""

    no_store: bool = False
    no_cache: bool = False
    max_age: Optional[int] = None
    s_maxage: Optional[int] = None
    private: bool = False
    must_revalidate: bool = False
    immutable: bool = False


@dataclass
class CachedResponse:
    """Cached response entry."""

    url: str
    method: str
    status_code: int
    status_message: str
    headers: List[Tuple[str, str]]
    body: bytes
    cached_at: float
    expires_at: float
    http_version: str = "HTTP/1.1"
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    directives: CacheControlDirectives = field(default_factory=CacheControlDirectives)
    final_url: Optional[str] = None
    redirect_urls: List[str] = field(default_factory=list)

    def is_fresh(self, now: Optional[float] = None) -> bool:
        if self.directives.no_cache:
            return False
        return (now if now is not None else time.time()) < self.expires_at

    def can_revalidate(self) -> bool:
        return bool(self.etag or self.last_modified)


class CacheStore(ABC):
    """Cache store interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CachedResponse]:
        """Get a cached response by key."""

    @abstractmethod
    async def set(self, key: str, response: CachedResponse) -> None:
        """Store a response."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a cached response."""


class MemoryCacheStore(CacheStore):
    """
    In-memory cache store with LRU eviction.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self._cache: "OrderedDict[str, CachedResponse]" = OrderedDict()
        self._max_entries = max_entries

    async def get(self, key: str) -> Optional[CachedResponse]:
        entry = self._cache.get(key)
        if entry is not None:
            self._cache.move_to_end(key)
        return entry

    async def set(self, key: str, response: CachedResponse) -> None:
        self._cache[key] = response
        self._cache.move_to_end(key)
        while len(self._cache) > self._max_entries:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug(f"MemoryCacheStore.set: evicted {evicted}")

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._cache)


@dataclass
class MappingCacheStore(CacheStore):
    """Adapts a plain MutableMapping (e.g. a dict) to the CacheStore interface."""

    mapping: MutableMapping[str, Any]

    async def get(self, key: str) -> Optional[CachedResponse]:
        return self.mapping.get(key)

    async def set(self, key: str, response: CachedResponse) -> None:
        self.mapping[key] = response

    async def delete(self, key: str) -> bool:
        return self.mapping.pop(key, None) is not None


def as_cache_store(cache: Any) -> Optional[CacheStore]:
    """Wrap supported cache types in a CacheStore."""
    if cache is None or cache is False:
        return None
    if isinstance(cache, CacheStore):
        return cache
    if isinstance(cache, MutableMapping):
        return MappingCacheStore(cache)
    raise ConfigurationError(
        f"cache must be a CacheStore or MutableMapping, got {type(cache).__name__}"
    )


def parse_cache_control(header: Optional[str]) -> CacheControlDirectives:
    """Parse Cache-Control header into directives."""
    directives = CacheControlDirectives()

    if not header:
        return directives

    for part in (p.strip().lower() for p in header.split(",")):
        if "=" in part:
            key, value = (s.strip() for s in part.split("=", 1))
            value = value.strip('"')
        else:
            key, value = part, None

        if key == "no-store":
            directives.no_store = True
        elif key == "no-cache":
            directives.no_cache = True
        elif key == "private":
            directives.private = True
        elif key == "must-revalidate":
            directives.must_revalidate = True
        elif key == "immutable":
            directives.immutable = True
        elif key in ("max-age", "s-maxage") and value:
            try:
                seconds = int(value)
            except ValueError:
                continue
            if key == "max-age":
                directives.max_age = seconds
            else:
                directives.s_maxage = seconds

    return directives


def parse_http_date(value: Optional[str]) -> Optional[float]:
    """Parse an HTTP-date into a Unix timestamp."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError):
        return None


def calculate_expiration(
    headers: httpx.Headers,
    directives: CacheControlDirectives,
    now: float,
) -> float:
    """Expiration time based on Cache-Control and Expires."""
    if directives.no_store:
        return now
    if directives.s_maxage is not None:
        return now + min(directives.s_maxage, MAX_TTL_SECONDS)
    if directives.max_age is not None:
        return now + min(directives.max_age, MAX_TTL_SECONDS)
    expires = parse_http_date(headers.get("expires"))
    if expires is not None:
        return now + max(0.0, min(expires - now, MAX_TTL_SECONDS))
    return now


def cache_key(method: str, url: str) -> str:
    return f"{method.upper()}:{url}"


class ResponseCache:
    """Cache operations used by the pipeline; wraps store failures."""

    def __init__(self, store: CacheStore) -> None:
        self._store = store

    async def lookup(self, method: str, url: str, options: Any = None) -> Optional[CachedResponse]:
        if method.upper() not in CACHEABLE_METHODS:
            return None
        key = cache_key(method, url)
        try:
            entry = await self._store.get(key)
        except Exception as e:
            raise CacheError(f"Cache lookup failed: {e}", options) from e
        logger.debug(f"ResponseCache.lookup: {'hit' if entry else 'miss'} {key}")
        return entry

    async def store(
        self,
        method: str,
        url: str,
        status_code: int,
        status_message: str,
        headers: httpx.Headers,
        body: bytes,
        http_version: str = "HTTP/1.1",
        options: Any = None,
        final_url: Optional[str] = None,
        redirect_urls: Optional[List[str]] = None,
    ) -> Optional[CachedResponse]:
        """
        Store a response if its method, status and headers allow it.

        ``url`` is the lookup key; ``final_url`` and ``redirect_urls`` record
        where the redirect chain ended.
        """
        if method.upper() not in CACHEABLE_METHODS or status_code not in CACHEABLE_STATUSES:
            return None
        directives = parse_cache_control(headers.get("cache-control"))
        if directives.no_store or directives.private or headers.get("vary") == "*":
            return None

        now = time.time()
        expires_at = calculate_expiration(headers, directives, now)
        etag = headers.get("etag")
        last_modified = headers.get("last-modified")
        if expires_at <= now and not (etag or last_modified):
            return None

        entry = CachedResponse(
            url=url,
            method=method.upper(),
            status_code=status_code,
            status_message=status_message,
            headers=[(k, v) for k, v in headers.multi_items()],
            body=body,
            cached_at=now,
            expires_at=expires_at,
            http_version=http_version,
            etag=etag,
            last_modified=last_modified,
            directives=directives,
            final_url=final_url,
            redirect_urls=list(redirect_urls or []),
        )
        key = cache_key(method, url)
        try:
            await self._store.set(key, entry)
        except Exception as e:
            raise CacheError(f"Cache store failed: {e}", options) from e
        logger.debug(f"ResponseCache.store: stored {key} (ttl={expires_at - now:.0f}s)")
        return entry

    async def refresh(self, entry: CachedResponse, headers: httpx.Headers, options: Any = None) -> CachedResponse:
        """Extend a revalidated entry with the headers of a 304 response."""
        directives = parse_cache_control(headers.get("cache-control")) if "cache-control" in headers else entry.directives
        now = time.time()
        entry.directives = directives
        entry.expires_at = calculate_expiration(headers, directives, now)
        entry.cached_at = now
        try:
            await self._store.set(cache_key(entry.method, entry.url), entry)
        except Exception as e:
            raise CacheError(f"Cache store failed: {e}", options) from e
        return entry


def conditional_headers(entry: CachedResponse) -> Dict[str, str]:
    """Headers for revalidating a stale entry."""
    headers: Dict[str, str] = {}
    if entry.etag:
        headers["if-none-match"] = entry.etag
    if entry.last_modified:
        headers["if-modified-since"] = entry.last_modified
    return headers
