"""
Type definitions for fetch_pipeline.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Protocol,
    Union,
)

import httpx


# HTTP methods
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "TRACE"]

# Schemes the executor knows how to send
SUPPORTED_PROTOCOLS = ("http", "https")

# Lifecycle events emitted per logical request
EventName = Literal[
    "request",
    "response",
    "redirect",
    "retry",
    "upload_progress",
    "download_progress",
    "error",
]


class HookName(str, Enum):
    """Supported hook points"""

    BEFORE_REQUEST = "before_request"
    """Called with the resolved options before every hop is sent."""

    BEFORE_REDIRECT = "before_redirect"
    """Called with the next hop's options and the redirect response."""

    BEFORE_RETRY = "before_retry"
    """Called with the options, the triggering error and the retry count."""


@dataclass
class Progress:
    """Upload or download progress."""

    percent: float
    transferred: int
    total: Optional[int] = None


@dataclass
class Phases:
    """Durations (seconds) derived from Timings milestones."""

    wait: Optional[float] = None
    """socket - start"""

    dns: Optional[float] = None
    """lookup - socket"""

    tcp: Optional[float] = None
    """connect - lookup"""

    tls: Optional[float] = None
    """secure_connect - connect"""

    request: Optional[float] = None
    """upload - (secure_connect or connect)"""

    first_byte: Optional[float] = None
    """response - upload"""

    download: Optional[float] = None
    """end - response"""

    total: Optional[float] = None
    """(end or error) - start"""


def _delta(later: Optional[float], earlier: Optional[float]) -> Optional[float]:
    if later is None or earlier is None:
        return None
    return later - earlier


@dataclass
class Timings:
    """
    Monotonic milestones (time.monotonic seconds) for one logical request.

    Only ``start`` is always present. Phases are computed on read.
    """

    start: float
    socket: Optional[float] = None
    lookup: Optional[float] = None
    connect: Optional[float] = None
    secure_connect: Optional[float] = None
    upload: Optional[float] = None
    response: Optional[float] = None
    end: Optional[float] = None
    error: Optional[float] = None

    @property
    def phases(self) -> Phases:
        handshake_done = self.secure_connect if self.secure_connect is not None else self.connect
        finished = self.end if self.end is not None else self.error
        return Phases(
            wait=_delta(self.socket, self.start),
            dns=_delta(self.lookup, self.socket),
            tcp=_delta(self.connect, self.lookup),
            tls=_delta(self.secure_connect, self.connect),
            request=_delta(self.upload, handshake_done),
            first_byte=_delta(self.response, self.upload),
            download=_delta(self.end, self.response),
            total=_delta(finished, self.start),
        )


@dataclass
class Response:
    """Final, externally observable result of a logical request."""

    status_code: int
    status_message: str
    headers: httpx.Headers
    url: str
    """Final URL after redirects."""

    request_url: str
    """URL of the first hop."""

    timings: Timings
    body: Any = None
    """Decoded body: str (encoding set), bytes (encoding None) or JSON value."""

    raw_body: Optional[bytes] = None
    from_cache: bool = False
    redirect_urls: List[str] = field(default_factory=list)
    retry_count: int = 0
    http_version: str = "HTTP/1.1"

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Serializer(Protocol):
    """Serializer protocol for custom JSON handling."""

    def serialize(self, data: Any) -> str:
        """Serialize data to string."""
        ...

    def deserialize(self, text: str) -> Any:
        """Deserialize string to data."""
        ...


# retries callable: (attempt, error) -> delay in seconds; falsy stops retrying
RetryFunction = Callable[[int, Exception], Optional[float]]

# Hook signatures; each may return an awaitable
BeforeRequestHook = Callable[[Any], Union[None, Awaitable[None]]]
BeforeRedirectHook = Callable[[Any, Response], Union[None, Awaitable[None]]]
BeforeRetryHook = Callable[[Any, Exception, int], Union[None, Awaitable[None]]]
Hook = Union[BeforeRequestHook, BeforeRedirectHook, BeforeRetryHook]

HooksMap = Dict[Union[HookName, str], Optional[List[Hook]]]

EventListener = Callable[..., None]

# agent: one transport for every scheme, or one per scheme
Agent = Union[httpx.AsyncBaseTransport, Dict[str, httpx.AsyncBaseTransport]]
