"""
Promise mode: an awaitable handle on a buffered logical request.
"""
import asyncio
import logging
from typing import Any, Generator, Optional

from ..core.pipeline import RequestPipeline
from ..errors import CancelError
from ..events import EventEmitter
from ..types import EventListener, Response

logger = logging.getLogger("fetch_pipeline.promise")


def retrieve_exception(task: "asyncio.Task[Any]") -> None:
    """Mark the outcome of a task as seen so an unawaited failure is not reported."""
    if not task.cancelled():
        task.exception()


class RequestPromise:
    """
    Awaitable result of a request in promise mode.

    The request starts as soon as the promise is created, so it must be
    created inside a running event loop. Awaiting it yields the Response or
    raises the terminal FetchError.

    Example:
        promise = client.get("https://example.com/users", json=True)
        promise.on("download_progress", print)
        response = await promise
    """

    def __init__(self, options: Any, emitter: Optional[EventEmitter] = None) -> None:
        self.emitter = emitter if emitter is not None else EventEmitter()
        self.pipeline = RequestPipeline(options, self.emitter)
        self._task = asyncio.get_running_loop().create_task(self.pipeline.run())
        self._task.add_done_callback(retrieve_exception)

    @property
    def options(self) -> Any:
        """Options of the current hop (changes across redirects)."""
        return self.pipeline.options

    def on(self, event: str, listener: EventListener) -> "RequestPromise":
        """Add an event listener; returns the promise for chaining."""
        self.emitter.on(event, listener)
        return self

    def once(self, event: str, listener: EventListener) -> "RequestPromise":
        self.emitter.once(event, listener)
        return self

    def cancel(self) -> None:
        """
        Abort the request.

        Awaiting the promise then raises CancelError. No effect once the
        request has settled.
        """
        if self._task.done():
            return
        logger.debug(f"RequestPromise.cancel: {self.pipeline.options.method} {self.pipeline.options.url}")
        self.pipeline.cancel()
        self._task.cancel()

    @property
    def is_canceled(self) -> bool:
        return self.pipeline.cancelled

    def done(self) -> bool:
        return self._task.done()

    async def _wait(self) -> Response:
        await asyncio.wait({self._task})
        if self._task.cancelled():
            if self.pipeline.cancel_error is not None:
                raise self.pipeline.cancel_error
            raise CancelError("Request was canceled", self.pipeline.options)
        return self._task.result()

    def __await__(self) -> Generator[Any, None, Response]:
        return self._wait().__await__()

