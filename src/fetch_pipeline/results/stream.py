"""
Stream mode: a duplex handle on a logical request.

The readable side yields raw body chunks as the consumer pulls them. The
writable side feeds the request body of POST/PUT/PATCH requests created
without one.
"""
import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Union

from ..core.pipeline import RequestPipeline
from ..errors import FetchError
from ..events import EventEmitter
from ..types import EventListener, Response
from .promise import retrieve_exception

logger = logging.getLogger("fetch_pipeline.stream")

PIPED_METHODS = ("POST", "PUT", "PATCH")

# Pending writes before write() waits for the transport
WRITE_QUEUE_SIZE = 16


class RequestStream:
    """
    Duplex result of a request in stream mode.

    No buffering or decoding happens: iteration yields the body bytes as
    received (decompressed only when ``decompress`` is set). A terminal
    failure is emitted once as an ``error`` event and raised to the consumer.

    Example:
        async with client.stream("https://example.com/file") as stream:
            response = await stream.response()
            async for chunk in stream:
                handle(chunk)
    """

    def __init__(self, options: Any, emitter: Optional[EventEmitter] = None) -> None:
        self.emitter = emitter if emitter is not None else EventEmitter()
        self._queue: Optional["asyncio.Queue[Optional[bytes]]"] = None
        self._ended = False
        if options.body is None and options.method in PIPED_METHODS:
            self._queue = asyncio.Queue(maxsize=WRITE_QUEUE_SIZE)
            options.body = self._piped_body()
        self.pipeline = RequestPipeline(options, self.emitter)
        self._error_emitted = False
        self._open_task = asyncio.get_running_loop().create_task(self.pipeline.open())
        self._open_task.add_done_callback(retrieve_exception)
        self._close_task: Optional["asyncio.Task[None]"] = None

    @property
    def options(self) -> Any:
        return self.pipeline.options

    @property
    def writable(self) -> bool:
        return self._queue is not None and not self._ended

    def on(self, event: str, listener: EventListener) -> "RequestStream":
        """Add an event listener; returns the stream for chaining."""
        self.emitter.on(event, listener)
        return self

    def once(self, event: str, listener: EventListener) -> "RequestStream":
        self.emitter.once(event, listener)
        return self

    # -------------------------------------------------------------------------
    # Writable side
    # -------------------------------------------------------------------------

    async def _piped_body(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    async def write(self, data: Union[bytes, str]) -> None:
        """
        Write a chunk of the request body.

        Waits while the transport has not consumed earlier chunks.
        """
        if not self.writable:
            raise RuntimeError(
                f"Cannot write to a {self.pipeline.options.method} stream that is "
                f"{'ended' if self._ended else 'not writable'}"
            )
        await self._queue.put(data.encode("utf-8") if isinstance(data, str) else bytes(data))

    async def end(self, data: Union[bytes, str, None] = None) -> None:
        """Finish the request body, optionally writing a last chunk."""
        if data:
            await self.write(data)
        if self.writable:
            self._ended = True
            await self._queue.put(None)

    # -------------------------------------------------------------------------
    # Readable side
    # -------------------------------------------------------------------------

    def _emit_error(self, error: FetchError) -> FetchError:
        """Emit the terminal error once; returns it for raising."""
        if not self._error_emitted:
            self._error_emitted = True
            self.emitter.emit("error", error)
        return error

    async def response(self) -> Response:
        """Wait for the final response headers."""
        await asyncio.wait({self._open_task})
        if self._open_task.cancelled():
            raise self._emit_error(self.pipeline.cancel())
        error = self._open_task.exception()
        if error is not None:
            if isinstance(error, FetchError):
                raise self._emit_error(error)
            raise error
        return self._open_task.result()

    def __aiter__(self) -> "RequestStream":
        return self

    async def __anext__(self) -> bytes:
        await self.response()
        try:
            chunk = await self.pipeline.read_chunk()
        except FetchError as error:
            raise self._emit_error(error)
        if chunk is None:
            raise StopAsyncIteration
        return chunk

    async def read(self) -> bytes:
        """Read the remaining body into memory."""
        return b"".join([chunk async for chunk in self])

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """
        Abort the request and release the connection.

        The next read raises CancelError. No effect once the body has been
        fully read.
        """
        if self._open_task.done():
            failed = self._open_task.cancelled() or self._open_task.exception() is not None
            reader = self.pipeline.reader
            if failed or reader is None or reader.finished:
                return
        logger.debug(f"RequestStream.cancel: {self.pipeline.options.method} {self.pipeline.options.url}")
        self.pipeline.cancel()
        if not self._open_task.done():
            self._open_task.cancel()
        else:
            self._close_task = asyncio.get_running_loop().create_task(self.pipeline.aclose())

    @property
    def is_canceled(self) -> bool:
        return self.pipeline.cancelled

    async def aclose(self) -> None:
        """Stop the request if still running and close the response."""
        if not self._open_task.done():
            self.pipeline.cancel()
            self._open_task.cancel()
            await asyncio.wait({self._open_task})
        if self._close_task is not None:
            await self._close_task
        await self.pipeline.aclose()

    async def __aenter__(self) -> "RequestStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
