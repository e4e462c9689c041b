"""
Options resolver: merges explicit options over a client's config chain into
a fully populated ResolvedOptions.
"""
import codecs
import dataclasses
import logging
from typing import Any, Mapping, Optional

import httpx

from ..cache import as_cache_store
from ..config import (
    DEFAULT_OPTIONS,
    ClientConfig,
    ResolvedOptions,
    merge_headers,
    merge_options,
    normalize_retry,
    normalize_timeout,
    is_debug_enabled_by_env,
)
from ..cookies import as_cookie_store
from ..errors import ConfigurationError, RequestError, UnsupportedProtocolError
from ..types import SUPPORTED_PROTOCOLS, HookName
from .request_builder import (
    build_url,
    is_replayable_body,
    is_streaming_body,
    strip_content_headers,
)

logger = logging.getLogger("fetch_pipeline.options_resolver")

BODYLESS_METHODS = ("GET", "HEAD")


def _validate_agent(agent: Any) -> None:
    if agent is None or isinstance(agent, httpx.AsyncBaseTransport):
        return
    if isinstance(agent, Mapping) and all(
        isinstance(v, httpx.AsyncBaseTransport) for v in agent.values()
    ):
        return
    raise ConfigurationError(
        "agent must be an httpx.AsyncBaseTransport or a {scheme: transport} mapping"
    )


def _validate_body(method: str, body: Any, json: bool, form: bool, headers: Mapping[str, str]) -> None:
    if json and form:
        raise ConfigurationError("json and form options are mutually exclusive")
    if body is None:
        return
    if method in BODYLESS_METHODS:
        raise ConfigurationError(f"{method} requests cannot have a body")
    if json:
        if not isinstance(body, (Mapping, list, tuple)):
            raise ConfigurationError(
                f"json body must be a mapping or list, got {type(body).__name__}"
            )
        content_type = headers.get("content-type")
        if content_type and "json" not in content_type.lower():
            raise ConfigurationError(
                f"json=True conflicts with content-type {content_type!r}"
            )
    elif form:
        if not isinstance(body, Mapping):
            raise ConfigurationError(
                f"form body must be a mapping, got {type(body).__name__}"
            )
    elif isinstance(body, (Mapping, list, tuple)):
        raise ConfigurationError(
            f"{type(body).__name__} body requires json=True or form=True"
        )
    elif not (isinstance(body, (str, bytes, bytearray, memoryview)) or is_streaming_body(body)):
        raise ConfigurationError(
            f"body must be str, bytes or an iterator, got {type(body).__name__}"
        )


def resolve_options(
    url: Optional[str] = None,
    explicit: Optional[Mapping[str, Any]] = None,
    config: Optional[ClientConfig] = None,
) -> ResolvedOptions:
    """
    Resolve options for one logical request.

    Args:
        url: Target URL (absolute, or relative to ``base_url``)
        explicit: Per-call options
        config: Config chain of the calling client instance

    Returns:
        ResolvedOptions with every default substituted

    Raises:
        ConfigurationError: Options are inconsistent or invalid
    """
    explicit = dict(explicit or {})
    if url is not None:
        explicit["url"] = url
    defaults = config.defaults if config is not None else DEFAULT_OPTIONS
    merged = merge_options(defaults, explicit)

    method = str(merged.get("method") or "GET").upper()
    headers = merge_headers(merged.get("headers") or {}, None)
    hooks = {HookName(name): tuple(hooks) for name, hooks in (merged.get("hooks") or {}).items()}
    for name in HookName:
        hooks.setdefault(name, ())

    json = bool(merged.get("json"))
    form = bool(merged.get("form"))
    decompress = bool(merged.get("decompress"))
    body = merged.get("body")
    _validate_body(method, body, json, form, headers)

    user_agent = merged.get("user_agent")
    if user_agent and "user-agent" not in headers:
        headers["user-agent"] = user_agent
    if decompress and "accept-encoding" not in headers:
        headers["accept-encoding"] = "gzip, deflate"
    if json and "accept" not in headers:
        headers["accept"] = "application/json"

    timeout = normalize_timeout(merged.get("timeout"))
    retry = normalize_retry(merged.get("retry"))
    if retry.max_retry_after is None and timeout.request is not None:
        retry = dataclasses.replace(retry, max_retry_after=timeout.request)

    max_redirects = merged.get("max_redirects")
    if isinstance(max_redirects, bool) or not isinstance(max_redirects, int) or max_redirects < 0:
        raise ConfigurationError(f"max_redirects must be a non-negative int, got {max_redirects!r}")

    encoding = merged.get("encoding")
    if encoding is not None:
        try:
            codecs.lookup(encoding)
        except LookupError as e:
            raise ConfigurationError(f"Unknown encoding: {encoding!r}") from e

    serializer = merged.get("serializer")
    if not (hasattr(serializer, "serialize") and hasattr(serializer, "deserialize")):
        raise ConfigurationError("serializer must provide serialize() and deserialize()")

    agent = merged.get("agent")
    _validate_agent(agent)

    base_url = merged.get("base_url")
    query = merged.get("query")
    target = build_url(base_url, merged.get("url"), query)

    resolved = ResolvedOptions(
        url=target,
        method=method,
        headers=headers,
        body=body,
        json=json,
        form=form,
        timeout=timeout,
        retry=retry,
        follow_redirect=bool(merged.get("follow_redirect")),
        max_redirects=max_redirects,
        decompress=decompress,
        cache=as_cache_store(merged.get("cache")),
        cookie_jar=as_cookie_store(merged.get("cookie_jar")),
        encoding=encoding,
        stream=bool(merged.get("stream")),
        throw_http_errors=bool(merged.get("throw_http_errors")),
        agent=agent,
        hooks=hooks,
        serializer=serializer,
        user_agent=user_agent,
        debug=bool(merged.get("debug")) or is_debug_enabled_by_env(),
        base_url=base_url,
        query=query,
    )
    logger.debug(f"resolve_options: {method} {target}")
    return resolved


def resolve_redirect_options(
    options: ResolvedOptions,
    location: str,
    status_code: int,
    response_url: str,
) -> ResolvedOptions:
    """
    Options of the next hop after a redirect response.

    ``location`` is resolved against ``response_url``. A 303 switches to GET
    and drops the body; other statuses keep the method and body, which must
    be replayable. Authorization is dropped on an https -> http downgrade.
    """
    current = httpx.URL(response_url)
    try:
        target = current.join(location)
    except httpx.InvalidURL as e:
        raise RequestError(f"Invalid redirect location {location!r}: {e}", options) from e

    if target.scheme not in SUPPORTED_PROTOCOLS:
        raise UnsupportedProtocolError(
            f"Unsupported protocol {target.scheme!r} in redirect to {target}", options
        )

    headers = dict(options.headers)
    method = options.method
    body = options.body
    if status_code == 303 and method != "HEAD":
        method = "GET"
        body = None
        headers = strip_content_headers(headers)
    elif body is not None and not is_replayable_body(body):
        raise RequestError(
            f"Cannot replay a streamed request body on a {status_code} redirect",
            options,
            code="ERR_STREAM_REPLAY",
        )

    if current.scheme == "https" and target.scheme == "http":
        headers.pop("authorization", None)
    headers.pop("host", None)

    logger.debug(f"resolve_redirect_options: {status_code} {response_url} -> {target} ({method})")
    return dataclasses.replace(
        options,
        url=str(target),
        method=method,
        body=body,
        headers=headers,
        hooks=dict(options.hooks),
        base_url=None,
        query=None,
    )
