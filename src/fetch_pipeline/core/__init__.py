"""
Request execution core.
"""
from .options_resolver import resolve_options, resolve_redirect_options
from .request_builder import RequestBody, build_body, build_url
from .hooks import HookRunner
from .transport import TraceRecorder, get_default_transport, select_transport
from .executor import BodyReader, RequestExecutor
from .pipeline import RequestPipeline, is_http_error

__all__ = [
    "resolve_options",
    "resolve_redirect_options",
    "RequestBody",
    "build_body",
    "build_url",
    "HookRunner",
    "TraceRecorder",
    "get_default_transport",
    "select_transport",
    "BodyReader",
    "RequestExecutor",
    "RequestPipeline",
    "is_http_error",
]
