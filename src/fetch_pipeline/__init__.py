"""
Asynchronous HTTP request pipeline on top of httpx transports.

Layered options, lifecycle hooks, retries, redirects, per-phase timings,
and two ways to consume a request: an awaitable promise or a live stream.
"""
from .types import (
    HttpMethod,
    HookName,
    Progress,
    Phases,
    Timings,
    Response,
    Serializer,
)
from .config import (
    TimeoutConfig,
    RetryConfig,
    RequestOptions,
    ClientConfig,
    ResolvedOptions,
    DefaultSerializer,
    DEFAULT_OPTIONS,
    DEFAULT_RETRY_CONFIG,
    DEFAULT_TIMEOUT,
    __version__,
)
from .errors import (
    FetchError,
    ConfigurationError,
    RequestError,
    ReadError,
    ParseError,
    HTTPError,
    MaxRedirectsError,
    UnsupportedProtocolError,
    CancelError,
    TimeoutError,
    CacheError,
    classify_error,
)
from .events import EventEmitter
from .cache import CacheStore, MemoryCacheStore
from .cookies import CookieStore, HttpxCookieStore
from .core.options_resolver import resolve_options
from .policies.retry import exponential_backoff, parse_retry_after
from .results import RequestPromise, RequestStream
from .factory import FetchClient, create_client

fetch = create_client()
"""Default client instance."""

__all__ = [
    # Types
    "HttpMethod",
    "HookName",
    "Progress",
    "Phases",
    "Timings",
    "Response",
    "Serializer",
    # Config
    "TimeoutConfig",
    "RetryConfig",
    "RequestOptions",
    "ClientConfig",
    "ResolvedOptions",
    "DefaultSerializer",
    "DEFAULT_OPTIONS",
    "DEFAULT_RETRY_CONFIG",
    "DEFAULT_TIMEOUT",
    # Errors
    "FetchError",
    "ConfigurationError",
    "RequestError",
    "ReadError",
    "ParseError",
    "HTTPError",
    "MaxRedirectsError",
    "UnsupportedProtocolError",
    "CancelError",
    "TimeoutError",
    "CacheError",
    "classify_error",
    # Collaborators
    "EventEmitter",
    "CacheStore",
    "MemoryCacheStore",
    "CookieStore",
    "HttpxCookieStore",
    # Pipeline
    "resolve_options",
    "exponential_backoff",
    "parse_retry_after",
    "RequestPromise",
    "RequestStream",
    # Factory
    "FetchClient",
    "create_client",
    "fetch",
]
