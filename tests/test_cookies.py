"""
Tests for cookie jar integration.
"""
from http.cookiejar import CookieJar

import httpx
import pytest

from conftest import respond
from fetch_pipeline import create_client
from fetch_pipeline.cookies import HttpxCookieStore, as_cookie_store
from fetch_pipeline.errors import ConfigurationError


class RecordingStore:
    """Minimal CookieStore implementation."""

    def __init__(self):
        self.stored = []

    def get_cookie_header(self, url):
        return "static=1"

    def store_cookies(self, url, set_cookie_headers):
        self.stored.append((url, list(set_cookie_headers)))


class TestAsCookieStore:
    """Tests for as_cookie_store."""

    def test_wraps_httpx_cookies(self):
        """Should wrap httpx.Cookies without copying it."""
        cookies = httpx.Cookies()
        store = as_cookie_store(cookies)
        assert isinstance(store, HttpxCookieStore)
        assert store.cookies is cookies

    def test_wraps_cookie_jar(self):
        """Should wrap a stdlib CookieJar."""
        assert isinstance(as_cookie_store(CookieJar()), HttpxCookieStore)

    def test_accepts_custom_store(self):
        """Should accept any object implementing the CookieStore protocol."""
        store = RecordingStore()
        assert as_cookie_store(store) is store

    def test_rejects_other_types(self):
        """Should reject unsupported cookie jars."""
        with pytest.raises(ConfigurationError):
            as_cookie_store({"session": "abc"})


class TestCookieRequests:
    """Tests for cookies sent and stored by requests."""

    @pytest.mark.asyncio
    async def test_stores_and_sends_cookies(self, sequence_transport):
        """Should send cookies set by an earlier response."""
        transport = sequence_transport(
            respond(200, headers={"set-cookie": "session=abc; Path=/"}),
            respond(200),
        )
        cookies = httpx.Cookies()
        client = create_client(agent=transport, cookie_jar=cookies)

        await client.get("https://example.com/login")
        await client.get("https://example.com/profile")

        assert cookies.get("session") == "abc"
        assert "cookie" not in transport.requests[0].headers
        assert transport.requests[1].headers["cookie"] == "session=abc"

    @pytest.mark.asyncio
    async def test_cookies_follow_redirects(self, sequence_transport):
        """Should send a cookie set by a redirect response to the next hop."""
        transport = sequence_transport(
            respond(302, headers={"location": "/home", "set-cookie": "token=xyz; Path=/"}),
            respond(200),
        )
        client = create_client(agent=transport, cookie_jar=httpx.Cookies())

        await client.get("https://example.com/login")

        assert transport.requests[1].headers["cookie"] == "token=xyz"

    @pytest.mark.asyncio
    async def test_custom_store(self, sequence_transport):
        """Should use a custom store for both directions."""
        transport = sequence_transport(respond(200, headers={"set-cookie": "a=1"}))
        store = RecordingStore()

        await create_client(agent=transport, cookie_jar=store).get("https://example.com/")

        assert transport.requests[0].headers["cookie"] == "static=1"
        assert store.stored == [("https://example.com/", ["a=1"])]
