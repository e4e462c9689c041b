"""
Request executor: runs one attempt against the transport and reads its body.
"""
import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from .. import debug
from ..errors import FetchError, TimeoutError, classify_error
from ..events import EventEmitter
from ..timings import TimingTracker
from ..types import Progress
from .request_builder import RequestBody
from .transport import TraceRecorder, select_transport

logger = logging.getLogger("fetch_pipeline.executor")


class RequestExecutor:
    """
    Sends attempts for a logical request.

    Failures are classified into FetchError kinds and raised to the
    pipeline, which hands them to the retry policy.
    """

    def __init__(self, tracker: TimingTracker, emitter: EventEmitter) -> None:
        self.tracker = tracker
        self.emitter = emitter
        self.request_deadline: Optional[float] = None
        """Loop-clock deadline of the last attempt, covering its body read."""

    async def send(self, options: Any, body: RequestBody) -> httpx.Response:
        """
        Send one attempt and wait for the response headers.

        Args:
            options: Resolved options of the current hop
            body: Serialized body of the current hop

        Returns:
            The open httpx response; the caller owns closing it

        Raises:
            FetchError: Classified transport, protocol or timeout failure
        """
        try:
            return await self._send(options, body)
        except FetchError as e:
            raise classify_error(e, options)
        except Exception as e:
            raise classify_error(e, options) from e

    async def _send(self, options: Any, body: RequestBody) -> httpx.Response:
        tracker = self.tracker
        url = httpx.URL(options.url)
        transport = select_transport(options.agent, url.scheme, options)

        headers = dict(options.headers)
        cookie_store = options.cookie_jar
        if cookie_store is not None:
            cookie = cookie_store.get_cookie_header(str(url))
            if cookie:
                headers["cookie"] = f"{headers['cookie']}; {cookie}" if "cookie" in headers else cookie
        headers.update(body.headers(headers))

        loop = asyncio.get_running_loop()
        uploaded = asyncio.Event()

        def on_upload() -> None:
            if not uploaded.is_set():
                tracker.mark_reused_socket()
                tracker.mark("upload")
                uploaded.set()

        def on_progress(progress: Progress) -> None:
            self.emitter.emit("upload_progress", progress)

        content = None
        if not body.is_empty:
            content = body.stream(body.total(headers), on_progress, on_upload)

        request = httpx.Request(
            options.method,
            url,
            headers=headers,
            content=content,
            extensions={
                "trace": TraceRecorder(tracker, on_upload),
                "timeout": options.timeout.to_extension(),
            },
        )
        logger.debug(f"RequestExecutor.send: {options.method} {url}")
        if options.debug:
            debug.print_request(options.method, str(url), request.headers, options.body)
        self.emitter.emit("request", request)

        timeout = options.timeout
        request_deadline = loop.time() + timeout.request if timeout.request is not None else None
        self.request_deadline = request_deadline
        response_deadline: Optional[float] = None
        if body.is_empty and timeout.response is not None:
            response_deadline = loop.time() + timeout.response

        send_task = asyncio.ensure_future(transport.handle_async_request(request))
        upload_task = asyncio.ensure_future(uploaded.wait())
        try:
            while True:
                deadline, event = request_deadline, "request"
                if response_deadline is not None and (deadline is None or response_deadline <= deadline):
                    deadline, event = response_deadline, "response"
                wait_for = max(0.0, deadline - loop.time()) if deadline is not None else None

                waiters = {send_task} if upload_task.done() else {send_task, upload_task}
                done, _ = await asyncio.wait(waiters, timeout=wait_for, return_when=asyncio.FIRST_COMPLETED)
                if send_task in done:
                    break
                if upload_task in done:
                    if response_deadline is None and timeout.response is not None:
                        response_deadline = loop.time() + timeout.response
                    continue
                logger.debug(f"RequestExecutor.send: deadline '{event}' elapsed for {url}")
                raise TimeoutError(f"Timeout awaiting '{event}'", options, event=event)
        finally:
            upload_task.cancel()
            if not send_task.done():
                send_task.cancel()
                await asyncio.gather(send_task, return_exceptions=True)

        response = send_task.result()
        response.request = request
        tracker.mark_reused_socket()
        tracker.mark("upload")
        tracker.mark("response")
        logger.debug(f"RequestExecutor.send: {response.status_code} from {url}")

        if cookie_store is not None:
            cookie_store.store_cookies(str(url), response.headers.get_list("set-cookie"))
        return response


class BodyReader:
    """
    Pulls the body of an open response chunk by chunk.

    Emits ``download_progress`` and enforces the remaining request deadline.
    Decoded bytes when ``decompress`` is set, raw bytes otherwise.
    """

    def __init__(
        self,
        response: httpx.Response,
        options: Any,
        emitter: EventEmitter,
        deadline: Optional[float] = None,
    ) -> None:
        self.response = response
        self.options = options
        self.emitter = emitter
        self.deadline = deadline
        self.finished = False
        self._received = 0
        self._started = False
        length = response.headers.get("content-length")
        self.total: Optional[int] = int(length) if length and length.isdigit() else None
        self._iterator: AsyncIterator[bytes] = (
            response.aiter_bytes() if options.decompress else response.aiter_raw()
        )

    @property
    def transferred(self) -> int:
        return self.response.num_bytes_downloaded or self._received

    def _progress(self, done: bool = False) -> Progress:
        transferred = self.transferred
        if done:
            return Progress(percent=1.0, transferred=transferred, total=self.total or transferred)
        percent = min(transferred / self.total, 1.0) if self.total else 0.0
        return Progress(percent=percent, transferred=transferred, total=self.total)

    async def read_chunk(self) -> Optional[bytes]:
        """Next chunk of the body, or None once it is exhausted."""
        if self.finished:
            return None
        if not self._started:
            self._started = True
            self.emitter.emit("download_progress", Progress(percent=0.0, transferred=0, total=self.total))

        while True:
            try:
                if self.deadline is None:
                    chunk = await self._iterator.__anext__()
                else:
                    remaining = self.deadline - asyncio.get_running_loop().time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    chunk = await asyncio.wait_for(self._iterator.__anext__(), remaining)
            except StopAsyncIteration:
                self.finished = True
                self.emitter.emit("download_progress", self._progress(done=True))
                return None
            except FetchError:
                raise
            except asyncio.TimeoutError as e:
                raise TimeoutError("Timeout awaiting 'request'", self.options, event="request") from e
            except Exception as e:
                raise classify_error(e, self.options, stage="read") from e

            if not chunk:
                continue
            self._received += len(chunk)
            progress = self._progress()
            if progress.percent < 1.0:
                self.emitter.emit("download_progress", progress)
            return chunk

    async def read_all(self) -> bytes:
        chunks = []
        while True:
            chunk = await self.read_chunk()
            if chunk is None:
                return b"".join(chunks)
            chunks.append(chunk)

    async def aclose(self) -> None:
        await self.response.aclose()
