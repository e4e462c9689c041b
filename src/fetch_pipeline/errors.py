"""
Error taxonomy for fetch_pipeline and the classifier that maps transport
failures onto it.
"""
import builtins
import logging
import ssl
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger("fetch_pipeline.errors")


class FetchError(Exception):
    """
    Base class for every failure surfaced by fetch_pipeline.

    Carries the connection-identifying context of the request that failed.
    """

    default_code: Optional[str] = None

    def __init__(
        self,
        message: str,
        options: Any = None,
        *,
        code: Optional[str] = None,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.response = response
        self.timings = None
        self.retry_count = 0
        self.redirect_urls: List[str] = []

        self.url: Optional[str] = None
        self.method: Optional[str] = None
        self.protocol: Optional[str] = None
        self.host: Optional[str] = None
        self.hostname: Optional[str] = None
        self.path: Optional[str] = None
        if options is not None:
            self.attach_context(options)

    def attach_context(self, options: Any) -> None:
        """Fill url/method/host/path/protocol from resolved options."""
        url = getattr(options, "url", None)
        if url is None:
            return
        parsed = httpx.URL(str(url))
        self.url = str(parsed)
        self.method = getattr(options, "method", None)
        self.protocol = f"{parsed.scheme}:" if parsed.scheme else None
        self.hostname = parsed.host or None
        self.host = parsed.netloc.decode("ascii") if parsed.netloc else None
        self.path = parsed.raw_path.decode("ascii")

    @property
    def name(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"{self.name}({str(self)!r}, code={self.code!r}, url={self.url!r})"


class ConfigurationError(FetchError, ValueError):
    """Options could not be resolved into a valid request."""

    default_code = "ERR_CONFIGURATION"


class RequestError(FetchError):
    """Generic transport failure (connect refused, reset, DNS, TLS...)."""

    default_code = "ERR_REQUEST"


class ReadError(FetchError):
    """The response body could not be consumed."""

    default_code = "ERR_READING_RESPONSE_STREAM"


class CacheError(FetchError):
    """The cache adapter failed."""

    default_code = "ERR_CACHE_ACCESS"


class UnsupportedProtocolError(FetchError):
    """The target scheme is not http or https."""

    default_code = "ERR_UNSUPPORTED_PROTOCOL"


class CancelError(FetchError):
    """The caller cancelled the request."""

    default_code = "ERR_CANCELED"


class TimeoutError(FetchError, builtins.TimeoutError):
    """A configured phase deadline elapsed."""

    default_code = "ETIMEDOUT"

    def __init__(self, message: str, options: Any = None, *, event: str = "request", **kwargs: Any) -> None:
        super().__init__(message, options, **kwargs)
        self.event = event


class _StatusError(FetchError):
    """Errors that carry the status line of a response."""

    def __init__(self, message: str, options: Any = None, *, response: Any = None, **kwargs: Any) -> None:
        super().__init__(message, options, response=response, **kwargs)
        self.status_code: Optional[int] = getattr(response, "status_code", None)
        self.status_message: str = getattr(response, "status_message", "") or ""


class ParseError(_StatusError):
    """The body was present but could not be decoded as JSON."""

    default_code = "ERR_BODY_PARSE_FAILURE"


class HTTPError(_StatusError):
    """The final response status was not successful."""

    default_code = "ERR_NON_2XX_3XX_RESPONSE"

    def __init__(self, response: Any, options: Any = None) -> None:
        status = getattr(response, "status_code", None)
        reason = getattr(response, "status_message", "") or ""
        super().__init__(
            f"Response code {status} ({reason})",
            options,
            response=response,
        )
        self.headers = getattr(response, "headers", None)
        self.body = getattr(response, "body", None)


class MaxRedirectsError(_StatusError):
    """The redirect hop limit was reached."""

    default_code = "ERR_TOO_MANY_REDIRECTS"

    def __init__(self, response: Any, max_redirects: int, redirect_urls: List[str], options: Any = None) -> None:
        super().__init__(
            f"Redirected {max_redirects} times. Aborting.",
            options,
            response=response,
        )
        self.redirect_urls = list(redirect_urls)


# Errors the retry policy never re-attempts
NON_RETRYABLE_ERRORS = (
    ParseError,
    CancelError,
    UnsupportedProtocolError,
    MaxRedirectsError,
    CacheError,
    ConfigurationError,
)

_ERRNO_CODES: Dict[str, str] = {
    "connection refused": "ECONNREFUSED",
    "connection reset": "ECONNRESET",
    "broken pipe": "EPIPE",
    "name or service not known": "ENOTFOUND",
    "nodename nor servname": "ENOTFOUND",
    "temporary failure in name resolution": "EAI_AGAIN",
    "getaddrinfo failed": "ENOTFOUND",
    "network is unreachable": "ENETUNREACH",
    "address already in use": "EADDRINUSE",
}


def _guess_code(error: BaseException) -> str:
    """Derive a node-style error code from an exception chain."""
    current: Optional[BaseException] = error
    while current is not None:
        if isinstance(current, ssl.SSLError):
            return "EPROTO"
        message = str(current).lower()
        for pattern, code in _ERRNO_CODES.items():
            if pattern in message:
                return code
        current = current.__cause__ or current.__context__
    if isinstance(error, (httpx.RemoteProtocolError, httpx.ReadError)):
        return "ECONNRESET"
    if isinstance(error, httpx.ConnectError):
        return "ECONNREFUSED"
    return RequestError.default_code


def _timeout_event(error: httpx.TimeoutException) -> str:
    if isinstance(error, httpx.ConnectTimeout):
        return "connect"
    if isinstance(error, httpx.WriteTimeout):
        return "send"
    # read and pool timeouts both mean the socket went idle
    return "socket"


def classify_error(error: BaseException, options: Any = None, *, stage: str = "request") -> FetchError:
    """
    Map any failure onto exactly one FetchError kind.

    Args:
        error: The exception raised while sending or reading
        options: Resolved options of the attempt, used for context
        stage: "request" while awaiting headers, "read" while consuming the body

    Returns:
        A FetchError carrying host/path/protocol/method context
    """
    if isinstance(error, FetchError):
        if error.url is None and options is not None:
            error.attach_context(options)
        return error

    if isinstance(error, httpx.UnsupportedProtocol):
        classified: FetchError = UnsupportedProtocolError(str(error), options)
    elif isinstance(error, httpx.TimeoutException):
        event = _timeout_event(error)
        classified = TimeoutError(f"Timeout awaiting '{event}'", options, event=event)
    elif isinstance(error, builtins.TimeoutError):
        classified = TimeoutError("Timeout awaiting 'request'", options, event="request")
    elif stage == "read" and isinstance(error, (httpx.TransportError, OSError, httpx.StreamError)):
        classified = ReadError(str(error) or type(error).__name__, options)
    elif isinstance(error, (httpx.TransportError, OSError)):
        classified = RequestError(str(error) or type(error).__name__, options, code=_guess_code(error))
    elif isinstance(error, httpx.DecodingError):
        classified = ReadError(str(error), options)
    else:
        classified = RequestError(str(error) or type(error).__name__, options)

    logger.debug(f"classify_error: {type(error).__name__} -> {classified.name} (code={classified.code})")
    classified.__cause__ = error
    return classified
