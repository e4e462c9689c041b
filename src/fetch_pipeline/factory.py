"""
Factory functions for creating fetch clients.

A FetchClient is a callable bound to an immutable ClientConfig chain.
``extend`` derives a child client; the parent is never modified.
"""
import logging
from typing import Any, Mapping, Optional, Union

from .config import ClientConfig, ResolvedOptions
from .core.options_resolver import resolve_options
from .results import RequestPromise, RequestStream

logger = logging.getLogger("fetch_pipeline.factory")


class FetchClient:
    """
    Callable HTTP client.

    ``client(url, **options)`` returns a RequestPromise, or a RequestStream
    when ``stream=True``. Option errors raise ConfigurationError right away.

    Example:
        api = create_client(base_url="https://api.example.com/v1", json=True)
        users = (await api.get("/users")).body
    """

    def __init__(self, config: Optional[ClientConfig] = None) -> None:
        self._config = config if config is not None else ClientConfig()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def defaults(self) -> Mapping[str, Any]:
        """Flattened defaults of this client (read-only)."""
        return self._config.defaults

    def resolve(self, url: Optional[str] = None, **options: Any) -> ResolvedOptions:
        """Resolve options for a call without sending anything."""
        return resolve_options(url, options, self._config)

    def __call__(self, url: Optional[str] = None, **options: Any) -> Union[RequestPromise, RequestStream]:
        resolved = self.resolve(url, **options)
        if resolved.stream:
            return RequestStream(resolved)
        return RequestPromise(resolved)

    def get(self, url: Optional[str] = None, **options: Any) -> Union[RequestPromise, RequestStream]:
        """GET request."""
        return self(url, method="GET", **options)

    def post(self, url: Optional[str] = None, **options: Any) -> Union[RequestPromise, RequestStream]:
        """POST request."""
        return self(url, method="POST", **options)

    def put(self, url: Optional[str] = None, **options: Any) -> Union[RequestPromise, RequestStream]:
        """PUT request."""
        return self(url, method="PUT", **options)

    def patch(self, url: Optional[str] = None, **options: Any) -> Union[RequestPromise, RequestStream]:
        """PATCH request."""
        return self(url, method="PATCH", **options)

    def head(self, url: Optional[str] = None, **options: Any) -> Union[RequestPromise, RequestStream]:
        """HEAD request."""
        return self(url, method="HEAD", **options)

    def delete(self, url: Optional[str] = None, **options: Any) -> Union[RequestPromise, RequestStream]:
        """DELETE request."""
        return self(url, method="DELETE", **options)

    def stream(self, url: Optional[str] = None, **options: Any) -> RequestStream:
        """Request in stream mode."""
        return self(url, stream=True, **options)

    def extend(self, **options: Any) -> "FetchClient":
        """
        Create a child client.

        Options override this client's defaults; headers merge key-wise and
        hooks concatenate after the parent's. No options yields a clone.
        """
        logger.debug(f"FetchClient.extend: {sorted(options)}")
        return FetchClient(self._config.extend(options))

    def __repr__(self) -> str:
        return f"FetchClient(depth={len(self._config.chain())}, options={dict(self._config.options)!r})"


def create_client(**options: Any) -> FetchClient:
    """
    Create a root client with the given default options.

    Args:
        **options: Any RequestOptions field (base_url, headers, json, retry, ...)

    Returns:
        FetchClient instance
    """
    return FetchClient(ClientConfig(options=options))
