"""
Cookie store collaborator.

The pipeline only needs two calls: the Cookie header for an outgoing URL,
and storing the Set-Cookie headers of a response.
"""
import logging
from dataclasses import dataclass, field
from http.cookiejar import CookieJar
from typing import Any, List, Optional, Protocol, runtime_checkable

import httpx

from .errors import ConfigurationError

logger = logging.getLogger("fetch_pipeline.cookies")


@runtime_checkable
class CookieStore(Protocol):
    """Cookie store interface."""

    def get_cookie_header(self, url: str) -> Optional[str]:
        """Cookie header value to send to ``url``, or None."""
        ...

    def store_cookies(self, url: str, set_cookie_headers: List[str]) -> None:
        """Remember the Set-Cookie headers received from ``url``."""
        ...


@dataclass
class HttpxCookieStore:
    """CookieStore backed by ``httpx.Cookies`` (a stdlib CookieJar)."""

    cookies: httpx.Cookies = field(default_factory=httpx.Cookies)

    def get_cookie_header(self, url: str) -> Optional[str]:
        request = httpx.Request("GET", url)
        self.cookies.set_cookie_header(request)
        return request.headers.get("cookie")

    def store_cookies(self, url: str, set_cookie_headers: List[str]) -> None:
        if not set_cookie_headers:
            return
        response = httpx.Response(
            200,
            headers=[("set-cookie", value) for value in set_cookie_headers],
            request=httpx.Request("GET", url),
        )
        self.cookies.extract_cookies(response)
        logger.debug(f"HttpxCookieStore.store_cookies: stored {len(set_cookie_headers)} cookie(s) from {url}")


def as_cookie_store(cookie_jar: Any) -> Optional[CookieStore]:
    """Wrap supported cookie jar types in a CookieStore."""
    if cookie_jar is None or cookie_jar is False:
        return None
    if isinstance(cookie_jar, httpx.Cookies):
        return HttpxCookieStore(cookie_jar)
    if isinstance(cookie_jar, CookieJar):
        return HttpxCookieStore(httpx.Cookies(cookie_jar))
    if isinstance(cookie_jar, CookieStore):
        return cookie_jar
    raise ConfigurationError(
        f"cookie_jar must be a CookieStore, httpx.Cookies or CookieJar, got {type(cookie_jar).__name__}"
    )
