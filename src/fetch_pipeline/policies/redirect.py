"""
Redirect handler: decides whether a response is followed and builds the
options of the next hop.
"""
import logging
from typing import Any, List

from ..core.options_resolver import resolve_redirect_options
from ..errors import MaxRedirectsError

logger = logging.getLogger("fetch_pipeline.redirect")

REDIRECT_STATUSES = (300, 301, 302, 303, 307, 308)

# 301 and 302 are only followed for these methods
SAFE_REDIRECT_METHODS = ("GET", "HEAD")


def should_follow_redirect(status_code: int, method: str, headers: Any, follow_redirect: bool = True) -> bool:
    """
    Check if a response is a redirect the pipeline should follow.

    Args:
        status_code: Response status
        method: Method of the request that produced the response
        headers: Response headers
        follow_redirect: The follow_redirect option
    """
    if not follow_redirect or status_code not in REDIRECT_STATUSES:
        return False
    if "location" not in headers:
        return False
    if status_code in (301, 302) and method.upper() not in SAFE_REDIRECT_METHODS:
        return False
    return True


class RedirectHandler:
    """Tracks the redirect chain of a logical request."""

    def __init__(self) -> None:
        self.redirect_urls: List[str] = []

    def next_hop(self, options: Any, response: Any) -> Any:
        """
        Options for following ``response``.

        Args:
            options: Resolved options of the hop that was redirected
            response: The redirect Response (status, headers, url)

        Raises:
            MaxRedirectsError: The chain already holds ``max_redirects`` URLs
            UnsupportedProtocolError: Location has a scheme other than http(s)
            RequestError: A streamed body cannot be sent again
        """
        max_redirects = options.max_redirects
        if len(self.redirect_urls) >= max_redirects:
            logger.debug(f"RedirectHandler.next_hop: limit {max_redirects} reached at {response.url}")
            raise MaxRedirectsError(response, max_redirects, self.redirect_urls, options)

        self.redirect_urls.append(response.url)
        location = response.headers["location"]
        next_options = resolve_redirect_options(options, location, response.status_code, response.url)
        logger.debug(
            f"RedirectHandler.next_hop: hop {len(self.redirect_urls)}/{max_redirects} -> {next_options.url}"
        )
        return next_options
