"""
Configuration for fetch_pipeline.

Explicit options travel as a ``RequestOptions`` mapping. Client instances
hold an immutable ``ClientConfig`` chain whose flattened ``defaults`` are
computed once when the instance is created.
"""
import json
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    TypedDict,
    Union,
)

from .errors import ConfigurationError
from .types import Agent, Hook, HookName, HooksMap, RetryFunction, Serializer

__version__ = "0.1.0"


@dataclass(frozen=True)
class TimeoutConfig:
    """
    Per-phase deadlines in seconds. ``None`` disables a phase.

    - lookup / connect / secure_connect: share the transport connect budget
    - socket: maximum idle time on the socket while reading or writing
    - send: time allowed to write the request
    - response: time from upload completion to response headers
    - request: whole attempt, from send until the body is consumed
    """

    lookup: Optional[float] = None
    connect: Optional[float] = None
    secure_connect: Optional[float] = None
    socket: Optional[float] = None
    send: Optional[float] = None
    response: Optional[float] = None
    request: Optional[float] = None

    def connect_budget(self) -> Optional[float]:
        parts = [p for p in (self.lookup, self.connect, self.secure_connect) if p is not None]
        return sum(parts) if parts else None

    def to_extension(self) -> Dict[str, Optional[float]]:
        """Timeout dict understood by the httpx/httpcore ``timeout`` extension."""
        connect = self.connect_budget()
        return {
            "connect": connect,
            "read": self.socket,
            "write": self.send if self.send is not None else self.socket,
            "pool": connect,
        }


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration"""

    retries: Union[int, RetryFunction] = 2
    """Retry count, or a callable (attempt, error) -> delay seconds. Default: 2"""

    methods: Tuple[str, ...] = ("GET", "PUT", "HEAD", "DELETE", "OPTIONS", "TRACE")
    """HTTP methods that are safe to retry"""

    status_codes: Tuple[int, ...] = (408, 413, 429, 500, 502, 503, 504)
    """HTTP status codes that should trigger retry"""

    max_retry_after: Optional[float] = None
    """Upper bound (seconds) for Retry-After delays. Default: timeout.request or unlimited"""


class RequestOptions(TypedDict, total=False):
    """Explicit options accepted per call and by ``extend``."""

    url: str
    base_url: Optional[str]
    method: str
    headers: Dict[str, Optional[str]]
    body: Any
    json: bool
    form: bool
    query: Union[str, Mapping[str, Any], List[Tuple[str, Any]], None]
    timeout: Union[float, TimeoutConfig, Mapping[str, float], None]
    retry: Union[int, RetryConfig, Mapping[str, Any], None]
    follow_redirect: bool
    max_redirects: int
    decompress: bool
    cache: Any
    cookie_jar: Any
    encoding: Optional[str]
    stream: bool
    throw_http_errors: bool
    agent: Optional[Agent]
    hooks: HooksMap
    serializer: Serializer
    user_agent: Optional[str]
    debug: bool


OPTION_NAMES = frozenset(RequestOptions.__annotations__)


class DefaultSerializer:
    """Default JSON serializer."""

    def serialize(self, data: Any) -> str:
        """Serialize data to JSON string."""
        return json.dumps(data)

    def deserialize(self, text: str) -> Any:
        """Deserialize JSON string to data."""
        return json.loads(text)


default_serializer = DefaultSerializer()


def is_debug_enabled_by_env() -> bool:
    """FETCH_PIPELINE_DEBUG=1 turns on request/response panels."""
    return os.environ.get("FETCH_PIPELINE_DEBUG", "") in ("1", "true", "yes")


# Default values
DEFAULT_TIMEOUT = TimeoutConfig()
DEFAULT_RETRY_CONFIG = RetryConfig()
DEFAULT_USER_AGENT = f"fetch-pipeline/{__version__}"
DEFAULT_MAX_REDIRECTS = 10

DEFAULT_OPTIONS: Mapping[str, Any] = MappingProxyType({
    "base_url": None,
    "method": "GET",
    "headers": {},
    "body": None,
    "json": False,
    "form": False,
    "query": None,
    "timeout": DEFAULT_TIMEOUT,
    "retry": DEFAULT_RETRY_CONFIG,
    "follow_redirect": True,
    "max_redirects": DEFAULT_MAX_REDIRECTS,
    "decompress": True,
    "cache": None,
    "cookie_jar": None,
    "encoding": "utf-8",
    "stream": False,
    "throw_http_errors": True,
    "agent": None,
    "hooks": {name: () for name in HookName},
    "serializer": default_serializer,
    "user_agent": DEFAULT_USER_AGENT,
    "debug": False,
})


def normalize_timeout(timeout: Union[TimeoutConfig, float, Mapping[str, float], None]) -> TimeoutConfig:
    """Normalize timeout config. A scalar is the whole-request deadline."""
    if timeout is None:
        return DEFAULT_TIMEOUT
    if isinstance(timeout, TimeoutConfig):
        return timeout
    if isinstance(timeout, bool):
        raise ConfigurationError(f"Invalid timeout: {timeout!r}")
    if isinstance(timeout, (int, float)):
        return TimeoutConfig(request=float(timeout))
    if isinstance(timeout, Mapping):
        try:
            return TimeoutConfig(**timeout)
        except TypeError as e:
            raise ConfigurationError(f"Invalid timeout: {e}") from e
    raise ConfigurationError(f"Invalid timeout: {timeout!r}")


def normalize_retry(retry: Union[RetryConfig, int, Mapping[str, Any], Callable, None]) -> RetryConfig:
    """Normalize retry config. An int or callable becomes ``retries``."""
    if retry is None:
        return DEFAULT_RETRY_CONFIG
    if isinstance(retry, RetryConfig):
        config = retry
    elif isinstance(retry, bool):
        raise ConfigurationError(f"Invalid retry: {retry!r}")
    elif isinstance(retry, int) or callable(retry):
        config = RetryConfig(retries=retry)
    elif isinstance(retry, Mapping):
        values = dict(retry)
        if "methods" in values:
            values["methods"] = tuple(m.upper() for m in values["methods"])
        if "status_codes" in values:
            values["status_codes"] = tuple(values["status_codes"])
        try:
            config = RetryConfig(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid retry: {e}") from e
    else:
        raise ConfigurationError(f"Invalid retry: {retry!r}")

    if isinstance(config.retries, int) and config.retries < 0:
        raise ConfigurationError("retry.retries must be >= 0")
    return config


def merge_headers(
    base: Mapping[str, str],
    override: Optional[Mapping[str, Optional[str]]],
) -> Dict[str, str]:
    """Key-wise, case-insensitive header merge. ``None`` removes a header."""
    result = {k.lower(): v for k, v in base.items()}
    for key, value in (override or {}).items():
        if value is None:
            result.pop(key.lower(), None)
        else:
            result[key.lower()] = str(value)
    return result


def merge_hooks(
    base: Mapping[HookName, Tuple[Hook, ...]],
    override: Optional[HooksMap],
) -> Dict[HookName, Tuple[Hook, ...]]:
    """Concatenate hook lists, parent first. ``None`` clears inherited hooks."""
    result = dict(base)
    for name, hooks in (override or {}).items():
        try:
            key = HookName(name)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown hook: {name!r}. Must be one of: {[h.value for h in HookName]}"
            ) from e
        if hooks is None:
            result[key] = ()
            continue
        for hook in hooks:
            if not callable(hook):
                raise ConfigurationError(f"Hook {key.value} must be callable, got {hook!r}")
        result[key] = tuple(result.get(key, ())) + tuple(hooks)
    return result


def validate_option_names(options: Mapping[str, Any]) -> None:
    """Reject misspelled option names early."""
    unknown = set(options) - OPTION_NAMES
    if unknown:
        raise ConfigurationError(f"Unknown options: {sorted(unknown)}")


def merge_options(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge explicit options over a base mapping.

    Fields are replaced shallowly, except headers (key-wise) and hooks
    (concatenated).
    """
    validate_option_names(override)
    result = dict(base)
    for key, value in override.items():
        if key == "headers":
            result["headers"] = merge_headers(result.get("headers") or {}, value)
        elif key == "hooks":
            result["hooks"] = merge_hooks(result.get("hooks") or {}, value)
        else:
            result[key] = value
    return result


@dataclass(frozen=True)
class ClientConfig:
    """
    Named defaults of a client instance.

    Each ``extend`` creates a child whose ``parent`` is the current config.
    Nothing in a config is mutated after construction.
    """

    options: Mapping[str, Any] = field(default_factory=dict)
    parent: Optional["ClientConfig"] = None
    defaults: Mapping[str, Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        base = self.parent.defaults if self.parent is not None else DEFAULT_OPTIONS
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))
        object.__setattr__(self, "defaults", MappingProxyType(merge_options(base, self.options)))

    def chain(self) -> List["ClientConfig"]:
        """Configs from root to this one."""
        chain: List[ClientConfig] = []
        node: Optional[ClientConfig] = self
        while node is not None:
            chain.append(node)
            node = node.parent
        return list(reversed(chain))

    def extend(self, options: Optional[Mapping[str, Any]] = None) -> "ClientConfig":
        """Create a child config. The parent is left untouched."""
        return ClientConfig(options=dict(options or {}), parent=self)


@dataclass
class ResolvedOptions:
    """
    Fully merged, default-substituted options for one logical request.

    Hooks receive this object and may mutate it in place.
    """

    url: str
    method: str
    headers: Dict[str, str]
    body: Any
    json: bool
    form: bool
    timeout: TimeoutConfig
    retry: RetryConfig
    follow_redirect: bool
    max_redirects: int
    decompress: bool
    cache: Any
    cookie_jar: Any
    encoding: Optional[str]
    stream: bool
    throw_http_errors: bool
    agent: Optional[Agent]
    hooks: Dict[HookName, Tuple[Hook, ...]]
    serializer: Serializer
    user_agent: Optional[str]
    debug: bool
    base_url: Optional[str] = None
    query: Any = None
