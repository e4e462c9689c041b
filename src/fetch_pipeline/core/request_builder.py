"""
Request builder utilities for fetch_pipeline.

URL composition, body serialization and the streaming upload body that
reports progress.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Mapping, Optional
from urllib.parse import urlencode, urljoin, urlparse

import httpx

from ..errors import ConfigurationError
from ..types import Progress

logger = logging.getLogger("fetch_pipeline.request_builder")

UPLOAD_CHUNK_SIZE = 64 * 1024

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")

CONTENT_HEADERS = ("content-type", "content-length", "transfer-encoding", "content-encoding")


def is_absolute_url(url: str) -> bool:
    return bool(_SCHEME_RE.match(url))


def build_url(
    base_url: Optional[str],
    path: Optional[str],
    query: Any = None,
) -> str:
    """
    Build the full URL of a request.

    An absolute ``path`` wins over ``base_url``. A relative path keeps the
    base path (``/v1`` + ``/users`` -> ``/v1/users``). A URL without a scheme
    gets ``https://``. ``query`` replaces any query string in the URL.
    """
    path = path or ""
    if is_absolute_url(path):
        url = path
    elif base_url:
        if not is_absolute_url(base_url):
            base_url = f"https://{base_url}"
        if path.startswith("/"):
            # Combine base path with the new path (avoid double slashes)
            parsed = urlparse(base_url)
            base_path = parsed.path.rstrip("/")
            url = f"{parsed.scheme}://{parsed.netloc}{base_path}{path}"
        elif path:
            if not base_url.endswith("/"):
                base_url = base_url + "/"
            url = urljoin(base_url, path)
        else:
            url = base_url
    elif path.startswith("/"):
        raise ConfigurationError(f"Relative url {path!r} requires base_url")
    elif path:
        url = f"https://{path}"
    else:
        raise ConfigurationError("url is required")

    try:
        parsed_url = httpx.URL(url)
        if query is not None:
            parsed_url = parsed_url.copy_with(params=query)
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid url {url!r}: {e}") from e
    return str(parsed_url)


def is_replayable_body(body: Any) -> bool:
    """Whether ``body`` can be sent again on retry or redirect."""
    return body is None or isinstance(body, (str, bytes, bytearray, memoryview, Mapping, list, tuple))


def is_streaming_body(body: Any) -> bool:
    return hasattr(body, "__aiter__") or (
        isinstance(body, Iterable) and not is_replayable_body(body)
    )


def strip_content_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k not in CONTENT_HEADERS}


@dataclass
class RequestBody:
    """
    Serialized request body of one hop.

    ``content`` is either the full payload (replayable) or the caller's
    iterator (sent once).
    """

    content: Any = None
    length: Optional[int] = None
    content_type: Optional[str] = None
    replayable: bool = True
    _consumed: bool = field(default=False, repr=False)

    @property
    def is_empty(self) -> bool:
        return self.content is None

    def headers(self, existing: Mapping[str, str]) -> Dict[str, str]:
        """Content headers to add to ``existing``."""
        extra: Dict[str, str] = {}
        if self.content is None:
            return extra
        if self.content_type and "content-type" not in existing:
            extra["content-type"] = self.content_type
        if "content-length" not in existing and "transfer-encoding" not in existing:
            if self.length is not None:
                extra["content-length"] = str(self.length)
            else:
                extra["transfer-encoding"] = "chunked"
        return extra

    def total(self, headers: Mapping[str, str]) -> Optional[int]:
        if self.length is not None:
            return self.length
        declared = headers.get("content-length")
        return int(declared) if declared and declared.isdigit() else None

    async def stream(
        self,
        total: Optional[int],
        on_progress: Callable[[Progress], None],
        on_complete: Callable[[], None],
    ) -> AsyncIterator[bytes]:
        """
        Yield the body in chunks, reporting progress after each one.

        Raises RuntimeError when a one-shot body is streamed twice.
        """
        if self._consumed and not self.replayable:
            raise RuntimeError("Request body stream has already been consumed")
        self._consumed = True

        transferred = 0
        on_progress(Progress(percent=0.0, transferred=0, total=total))
        async for chunk in self._chunks():
            if not chunk:
                continue
            transferred += len(chunk)
            percent = min(transferred / total, 1.0) if total else 0.0
            if percent < 1.0:
                on_progress(Progress(percent=percent, transferred=transferred, total=total))
            yield chunk
        on_progress(Progress(percent=1.0, transferred=transferred, total=total))
        on_complete()

    async def _chunks(self) -> AsyncIterator[bytes]:
        content = self.content
        if isinstance(content, bytes):
            for i in range(0, len(content), UPLOAD_CHUNK_SIZE):
                yield content[i : i + UPLOAD_CHUNK_SIZE]
        elif hasattr(content, "__aiter__"):
            async for chunk in content:
                yield _to_bytes(chunk)
        else:
            for chunk in content:
                yield _to_bytes(chunk)


def _to_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


def build_body(options: Any) -> RequestBody:
    """Serialize the body of resolved options (json, form, text, bytes or iterator)."""
    body = options.body
    if body is None:
        return RequestBody()

    if options.json:
        payload = options.serializer.serialize(body)
        content = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        return RequestBody(content, len(content), "application/json")

    if options.form:
        content = urlencode(body, doseq=True).encode("utf-8")
        return RequestBody(content, len(content), "application/x-www-form-urlencoded")

    if isinstance(body, str):
        content = body.encode(options.encoding or "utf-8")
        return RequestBody(content, len(content))

    if isinstance(body, (bytes, bytearray, memoryview)):
        content = bytes(body)
        return RequestBody(content, len(content))

    logger.debug(f"build_body: streaming body of type {type(body).__name__}")
    return RequestBody(body, None, replayable=False)
