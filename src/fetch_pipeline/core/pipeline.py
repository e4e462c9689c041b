"""
Logical request pipeline.

Runs hooks, attempts, retries and redirects for one caller-visible request
and hands the final response to a result adapter. Promise mode buffers and
decodes the body; stream mode exposes the open body to the consumer.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional, Tuple

import httpx

from .. import debug
from ..cache import CachedResponse, ResponseCache, conditional_headers
from ..errors import CancelError, FetchError, HTTPError, ParseError
from ..events import EventEmitter
from ..policies.redirect import RedirectHandler, should_follow_redirect
from ..policies.retry import RetryPolicy, is_retryable_status
from ..timings import TimingTracker
from ..types import HookName, Response
from .executor import BodyReader, RequestExecutor
from .hooks import HookRunner
from .request_builder import build_body

logger = logging.getLogger("fetch_pipeline.pipeline")


def is_http_error(status_code: int, follow_redirect: bool) -> bool:
    """Whether a final status is an HTTP error (3xx is final only without redirects)."""
    if status_code == 304:
        return False
    limit = 299 if follow_redirect else 399
    return status_code < 200 or status_code > limit


class RequestPipeline:
    """
    One logical request, from the first hook to the final response.

    Args:
        options: Resolved options; hooks may mutate them in place
        emitter: Event channel shared with the result adapter
        clock: Monotonic clock used for timings
    """

    def __init__(
        self,
        options: Any,
        emitter: Optional[EventEmitter] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options
        self.emitter = emitter if emitter is not None else EventEmitter()
        self.tracker = TimingTracker(clock)
        self.executor = RequestExecutor(self.tracker, self.emitter)
        self.hooks = HookRunner()
        self.redirects = RedirectHandler()
        self.request_url: str = options.url
        self.retry_count = 0
        self.reader: Optional[BodyReader] = None
        self.response: Optional[Response] = None
        self.cancelled = False
        self.cancel_error: Optional[CancelError] = None
        self._cache = ResponseCache(options.cache) if options.cache is not None and not options.stream else None

    @property
    def timings(self):
        return self.tracker.timings

    # -------------------------------------------------------------------------
    # Cancellation and failure bookkeeping
    # -------------------------------------------------------------------------

    def cancel(self) -> CancelError:
        """Flag the request as cancelled; returns the single CancelError."""
        if self.cancel_error is None:
            self.cancelled = True
            self.cancel_error = self._fail(CancelError("Request was canceled", self.options))
            logger.debug(f"RequestPipeline.cancel: {self.options.method} {self.options.url}")
        return self.cancel_error

    def _check_cancelled(self) -> None:
        if self.cancelled:
            raise self.cancel()

    def _fail(self, error: FetchError) -> FetchError:
        if error.url is None:
            error.attach_context(self.options)
        error.timings = self.tracker.fail()
        error.retry_count = self.retry_count
        error.redirect_urls = list(self.redirects.redirect_urls)
        logger.debug(f"RequestPipeline: {error.name} ({error.code}) for {error.method} {error.url}")
        if self.options.debug:
            debug.print_error(error)
        return error

    # -------------------------------------------------------------------------
    # Attempts, retries and redirects
    # -------------------------------------------------------------------------

    def _snapshot(self, raw: httpx.Response, options: Any) -> Response:
        return Response(
            status_code=raw.status_code,
            status_message=raw.reason_phrase,
            headers=raw.headers,
            url=options.url,
            request_url=self.request_url,
            timings=self.tracker.timings,
            redirect_urls=list(self.redirects.redirect_urls),
            retry_count=self.retry_count,
            http_version=raw.http_version,
        )

    async def _retry(self, policy: RetryPolicy, error: FetchError, raw: Optional[httpx.Response] = None) -> bool:
        """
        Wait and run BEFORE_RETRY hooks if the policy allows another attempt.

        ``raw`` is closed before waiting when the attempt is retried.
        """
        try:
            delay = policy.compute_delay(self.retry_count, error)
        except FetchError:
            if raw is not None:
                await raw.aclose()
            raise
        if delay is None:
            return False
        if raw is not None:
            await raw.aclose()
        self.retry_count += 1
        error.retry_count = self.retry_count
        logger.debug(
            f"RequestPipeline: retry {self.retry_count} of {self.options.url} in {delay}s ({error.name})"
        )
        if delay > 0:
            await asyncio.sleep(delay)
        self._check_cancelled()
        await self.hooks.run(HookName.BEFORE_RETRY, self.options, error, self.retry_count)
        self.emitter.emit("retry", self.retry_count, error)
        return True

    async def _execute(self, buffer: bool) -> Tuple[Response, Optional[bytes]]:
        """
        Run attempts and hops until a final response is available.

        With ``buffer`` the body is read inside the retry loop, so read
        failures are retried; otherwise the open body is left in ``reader``.
        """
        options = self.options
        while True:
            body = build_body(options)
            policy = RetryPolicy(options.retry, options.method, body.replayable)
            self.retry_count = 0

            while True:
                self._check_cancelled()
                self.tracker.begin_attempt()
                try:
                    raw = await self.executor.send(options, body)
                except FetchError as error:
                    if await self._retry(policy, error):
                        continue
                    raise

                snapshot = self._snapshot(raw, options)
                if should_follow_redirect(raw.status_code, options.method, raw.headers, options.follow_redirect):
                    await raw.aclose()
                    break

                if is_retryable_status(raw.status_code, options.retry):
                    if await self._retry(policy, HTTPError(snapshot, options), raw):
                        continue

                reader = BodyReader(raw, options, self.emitter, self.executor.request_deadline)
                if not buffer:
                    self.reader = reader
                    return snapshot, None
                try:
                    data = await reader.read_all()
                except FetchError as error:
                    await reader.aclose()
                    if await self._retry(policy, error):
                        continue
                    raise
                except asyncio.CancelledError:
                    await reader.aclose()
                    raise
                await reader.aclose()
                return snapshot, data

            next_options = self.redirects.next_hop(options, snapshot)
            self.emitter.emit("redirect", snapshot, next_options)
            await self.hooks.run(HookName.BEFORE_REDIRECT, next_options, snapshot)
            await self.hooks.run(HookName.BEFORE_REQUEST, next_options)
            self.options = options = next_options

    # -------------------------------------------------------------------------
    # Promise mode
    # -------------------------------------------------------------------------

    def _decode(self, response: Response, data: bytes) -> None:
        """Fill ``body``/``raw_body``; JSON failures on 2xx raise ParseError."""
        options = self.options
        response.raw_body = data
        text = data.decode(options.encoding, errors="replace") if options.encoding else data
        response.body = text
        if options.json and data:
            try:
                response.body = options.serializer.deserialize(
                    text if isinstance(text, str) else data.decode("utf-8", errors="replace")
                )
            except ValueError as e:
                if 200 <= response.status_code < 300:
                    raise ParseError(
                        f"{e} in {response.url}", options, response=response
                    ) from e
                logger.debug(f"RequestPipeline: non-JSON body on {response.status_code}, kept as text")

    def _cached_response(self, entry: CachedResponse) -> Response:
        return Response(
            status_code=entry.status_code,
            status_message=entry.status_message,
            headers=httpx.Headers(entry.headers),
            url=entry.final_url or entry.url,
            request_url=self.request_url,
            redirect_urls=list(entry.redirect_urls),
            timings=self.tracker.timings,
            from_cache=True,
            http_version=entry.http_version,
        )

    async def _finalize(self, response: Response) -> Response:
        options = self.options
        self.tracker.finish()
        self.response = response
        if options.debug:
            debug.print_response(
                response.status_code,
                response.status_message,
                response.url,
                response.headers,
                response.body,
                response.from_cache,
            )
        if options.throw_http_errors and is_http_error(response.status_code, options.follow_redirect):
            raise HTTPError(response, options)
        self.emitter.emit("response", response)
        return response

    async def run(self) -> Response:
        """
        Execute the request and buffer its body.

        Raises:
            FetchError: The terminal failure of the logical request
        """
        try:
            await self.hooks.run(HookName.BEFORE_REQUEST, self.options)
            return await self._run_buffered()
        except asyncio.CancelledError:
            if self.cancelled:
                raise self.cancel() from None
            raise
        except FetchError as error:
            raise self._fail(error)

    async def _run_buffered(self) -> Response:
        options = self.options
        cache = self._cache
        entry: Optional[CachedResponse] = None
        # Keyed on the url and method after BEFORE_REQUEST hooks, before redirects
        key_method, key_url = options.method, options.url
        if cache is not None:
            entry = await cache.lookup(key_method, key_url, options)
            if entry is not None and entry.is_fresh():
                logger.debug(f"RequestPipeline: cache hit for {options.url}")
                response = self._cached_response(entry)
                self._decode(response, entry.body)
                return await self._finalize(response)
            if entry is not None and entry.can_revalidate():
                options.headers.update(conditional_headers(entry))
            else:
                entry = None

        response, data = await self._execute(buffer=True)

        if cache is not None:
            if entry is not None and response.status_code == 304:
                logger.debug(f"RequestPipeline: revalidated {self.request_url}")
                entry = await cache.refresh(entry, response.headers, self.options)
                cached = self._cached_response(entry)
                cached.url = response.url
                cached.redirect_urls = response.redirect_urls
                cached.retry_count = response.retry_count
                self._decode(cached, entry.body)
                return await self._finalize(cached)
            await cache.store(
                key_method,
                key_url,
                response.status_code,
                response.status_message,
                response.headers,
                data or b"",
                response.http_version,
                self.options,
                final_url=response.url,
                redirect_urls=response.redirect_urls,
            )

        self._decode(response, data or b"")
        return await self._finalize(response)

    # -------------------------------------------------------------------------
    # Stream mode
    # -------------------------------------------------------------------------

    async def open(self) -> Response:
        """
        Execute the request up to the final response headers.

        The body is left open; pull it with ``read_chunk``.
        """
        try:
            await self.hooks.run(HookName.BEFORE_REQUEST, self.options)
            response, _ = await self._execute(buffer=False)
            options = self.options
            self.response = response
            if options.debug:
                debug.print_response(
                    response.status_code, response.status_message, response.url, response.headers
                )
            if options.throw_http_errors and is_http_error(response.status_code, options.follow_redirect):
                await self.aclose()
                raise HTTPError(response, options)
            self.emitter.emit("response", response)
            return response
        except asyncio.CancelledError:
            await self.aclose()
            if self.cancelled:
                raise self.cancel() from None
            raise
        except FetchError as error:
            raise self._fail(error)

    async def read_chunk(self) -> Optional[bytes]:
        """Next raw chunk of an opened response, or None at the end."""
        self._check_cancelled()
        if self.reader is None:
            return None
        try:
            chunk = await self.reader.read_chunk()
        except asyncio.CancelledError:
            await self.aclose()
            if self.cancelled:
                raise self.cancel() from None
            raise
        except FetchError as error:
            await self.aclose()
            raise self._fail(error)
        if chunk is None:
            self.tracker.finish()
            await self.aclose()
        return chunk

    async def aclose(self) -> None:
        """Release the open response, if any."""
        if self.reader is not None:
            await self.reader.aclose()
