"""
Transport selection and connection milestone tracing.

Requests go straight to an ``httpx.AsyncBaseTransport`` so redirects and
cookies stay under the pipeline's control. Connection milestones come from
the httpcore ``trace`` request extension.
"""
import asyncio
import logging
import os
import weakref
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from ..errors import UnsupportedProtocolError
from ..timings import TimingTracker
from ..types import SUPPORTED_PROTOCOLS, Agent

logger = logging.getLogger("fetch_pipeline.transport")

_default_transports: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, httpx.AsyncBaseTransport]" = (
    weakref.WeakKeyDictionary()
)


def _is_ssl_verify_disabled_by_env() -> bool:
    """
    Check if SSL verification is disabled via environment variables.

    Returns True if any of these are set:
    - NODE_TLS_REJECT_UNAUTHORIZED=0
    - SSL_CERT_VERIFY=0
    """
    node_tls = os.environ.get("NODE_TLS_REJECT_UNAUTHORIZED", "")
    ssl_cert_verify = os.environ.get("SSL_CERT_VERIFY", "")
    return node_tls == "0" or ssl_cert_verify == "0"


def get_default_transport() -> httpx.AsyncBaseTransport:
    """Connection-pooling transport shared by requests on the running loop."""
    loop = asyncio.get_running_loop()
    transport = _default_transports.get(loop)
    if transport is None:
        verify = not _is_ssl_verify_disabled_by_env()
        if not verify:
            logger.warning("get_default_transport: TLS verification disabled by environment")
        transport = httpx.AsyncHTTPTransport(verify=verify)
        _default_transports[loop] = transport
    return transport


def select_transport(agent: Optional[Agent], scheme: str, options: Any = None) -> httpx.AsyncBaseTransport:
    """
    Pick the transport for ``scheme``.

    Args:
        agent: A transport for every scheme, a {scheme: transport} mapping, or None
        scheme: URL scheme of the attempt
        options: Resolved options, for error context

    Raises:
        UnsupportedProtocolError: The scheme is not http or https
    """
    if scheme not in SUPPORTED_PROTOCOLS:
        raise UnsupportedProtocolError(f"Unsupported protocol {scheme!r}", options)
    if agent is None:
        return get_default_transport()
    if isinstance(agent, Mapping):
        transport = agent.get(scheme)
        return transport if transport is not None else get_default_transport()
    return agent


class TraceRecorder:
    """
    httpcore ``trace`` callback feeding the TimingTracker.

    ``on_upload`` is called once the request body has been written.
    """

    def __init__(self, tracker: TimingTracker, on_upload: Optional[Callable[[], None]] = None) -> None:
        self._tracker = tracker
        self._on_upload = on_upload

    async def __call__(self, event_name: str, info: Dict[str, Any]) -> None:
        tracker = self._tracker
        if event_name in ("connection.connect_tcp.started", "connection.connect_unix_socket.started"):
            tracker.mark("socket")
        elif event_name in ("connection.connect_tcp.complete", "connection.connect_unix_socket.complete"):
            tracker.mark("lookup")
            tracker.mark("connect")
        elif event_name == "connection.start_tls.complete":
            tracker.mark("secure_connect")
        elif event_name.endswith(".send_request_headers.started"):
            tracker.mark_reused_socket()
        elif event_name.endswith(".send_request_body.complete"):
            tracker.mark("upload")
            if self._on_upload is not None:
                self._on_upload()
        elif event_name.endswith(".receive_response_headers.complete"):
            tracker.mark("response")
