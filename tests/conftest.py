"""
Shared fixtures for fetch_pipeline tests.
"""
import asyncio
from typing import Callable, List

import httpx
import pytest
import respx

from fetch_pipeline import create_client


@pytest.fixture
def router():
    """respx router used behind an httpx.MockTransport (no global patching)."""
    return respx.MockRouter(assert_all_called=False)


@pytest.fixture
def transport(router):
    return httpx.MockTransport(router.async_handler)


@pytest.fixture
def client(transport):
    """Client whose requests all go to the mock router."""
    return create_client(agent=transport)


class SequenceTransport(httpx.AsyncBaseTransport):
    """
    Transport that answers with a scripted sequence of handlers.

    Each handler receives the request and returns an httpx.Response or
    raises. Async handlers are awaited. Every request is recorded.
    """

    def __init__(self, *handlers: Callable) -> None:
        self.handlers = list(handlers)
        self.requests: List[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        index = min(len(self.requests), len(self.handlers)) - 1
        result = self.handlers[index](request)
        if asyncio.iscoroutine(result):
            result = await result
        return result


@pytest.fixture
def sequence_transport():
    """Factory for SequenceTransport instances."""
    return SequenceTransport


def respond(status_code: int = 200, **kwargs) -> Callable:
    """Handler returning a fresh response on every call."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, **kwargs)

    return handler


def respond_after(delay: float, status_code: int = 200, **kwargs) -> Callable:
    """Handler that waits ``delay`` seconds before answering."""

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay)
        return httpx.Response(status_code, **kwargs)

    return handler


def fail_with(error: Exception) -> Callable:
    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    return handler
