"""
Tests for redirect following.
"""
import httpx
import pytest

from conftest import respond
from fetch_pipeline import create_client
from fetch_pipeline.errors import MaxRedirectsError, RequestError, UnsupportedProtocolError
from fetch_pipeline.policies.redirect import should_follow_redirect


def redirect_to(location, status_code=302):
    return respond(status_code, headers={"location": location})


def endless_redirects(request: httpx.Request) -> httpx.Response:
    hop = int(request.url.path.rsplit("/", 1)[-1])
    return httpx.Response(302, headers={"location": f"/loop/{hop + 1}"})


async def body_chunks():
    yield b"part-1"
    yield b"part-2"


class TestShouldFollowRedirect:
    """Tests for should_follow_redirect."""

    @pytest.mark.parametrize("status", [300, 301, 302, 303, 307, 308])
    def test_follows_redirect_statuses_for_get(self, status):
        """Should follow every redirect status for GET."""
        assert should_follow_redirect(status, "GET", {"location": "/x"})

    def test_requires_location(self):
        """Should not follow a redirect without Location."""
        assert not should_follow_redirect(302, "GET", {})

    def test_disabled(self):
        """Should not follow when follow_redirect is off."""
        assert not should_follow_redirect(302, "GET", {"location": "/x"}, follow_redirect=False)

    def test_301_302_only_for_safe_methods(self):
        """Should follow 301/302 only for GET and HEAD; 303/307/308 for any method."""
        assert not should_follow_redirect(302, "POST", {"location": "/x"})
        assert not should_follow_redirect(301, "PUT", {"location": "/x"})
        assert should_follow_redirect(303, "POST", {"location": "/x"})
        assert should_follow_redirect(307, "POST", {"location": "/x"})
        assert should_follow_redirect(308, "PATCH", {"location": "/x"})


class TestRedirects:
    """Tests for redirects through the pipeline."""

    @pytest.mark.asyncio
    async def test_follows_chain(self, client, router):
        """Should follow /a -> /b -> /c and record the chain."""
        router.get("https://example.com/a").mock(return_value=httpx.Response(302, headers={"location": "/b"}))
        router.get("https://example.com/b").mock(
            return_value=httpx.Response(301, headers={"location": "https://example.com/c"})
        )
        router.get("https://example.com/c").mock(return_value=httpx.Response(200, text="done"))
        redirects = []

        promise = client.get("https://example.com/a")
        promise.on("redirect", lambda response, options: redirects.append((response.status_code, options.url)))
        response = await promise

        assert response.status_code == 200
        assert response.body == "done"
        assert response.url == "https://example.com/c"
        assert response.request_url == "https://example.com/a"
        assert response.redirect_urls == ["https://example.com/a", "https://example.com/b"]
        assert redirects == [(302, "https://example.com/b"), (301, "https://example.com/c")]

    @pytest.mark.asyncio
    async def test_max_redirects(self, sequence_transport):
        """Should raise MaxRedirectsError with a chain of exactly max_redirects URLs."""
        transport = sequence_transport(endless_redirects)
        client = create_client(agent=transport, max_redirects=3)

        with pytest.raises(MaxRedirectsError) as exc_info:
            await client.get("https://example.com/loop/0")

        error = exc_info.value
        assert error.redirect_urls == [
            "https://example.com/loop/0",
            "https://example.com/loop/1",
            "https://example.com/loop/2",
        ]
        assert error.status_code == 302
        assert len(transport.requests) == 4

    @pytest.mark.asyncio
    async def test_zero_max_redirects(self, sequence_transport):
        """Should fail on the first redirect when max_redirects is 0."""
        transport = sequence_transport(endless_redirects)

        with pytest.raises(MaxRedirectsError) as exc_info:
            await create_client(agent=transport, max_redirects=0).get("https://example.com/loop/0")

        assert exc_info.value.redirect_urls == []

    @pytest.mark.asyncio
    async def test_follow_redirect_disabled(self, client, router):
        """Should return the 3xx response as final without raising."""
        router.get("https://example.com/a").mock(return_value=httpx.Response(302, headers={"location": "/b"}))

        response = await client.get("https://example.com/a", follow_redirect=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/b"
        assert response.redirect_urls == []

    @pytest.mark.asyncio
    async def test_303_switches_post_to_get(self, sequence_transport):
        """Should re-issue a POST as a bodiless GET after 303."""
        transport = sequence_transport(redirect_to("/done", 303), respond(200, text="ok"))

        response = await create_client(agent=transport).post("https://example.com/form", body="a=1")

        first, second = transport.requests
        assert first.method == "POST"
        assert first.content == b"a=1"
        assert second.method == "GET"
        assert second.content == b""
        assert "content-length" not in second.headers
        assert response.url == "https://example.com/done"

    @pytest.mark.asyncio
    async def test_307_replays_body(self, sequence_transport):
        """Should resend method and body after 307."""
        transport = sequence_transport(redirect_to("/v2/upload", 307), respond(201))

        await create_client(agent=transport).put("https://example.com/upload", body=b"data")

        assert [(r.method, r.content) for r in transport.requests] == [("PUT", b"data"), ("PUT", b"data")]

    @pytest.mark.asyncio
    async def test_307_with_streamed_body_fails(self, sequence_transport):
        """Should refuse to replay a one-shot body."""
        transport = sequence_transport(redirect_to("/other", 307), respond(200))

        with pytest.raises(RequestError) as exc_info:
            await create_client(agent=transport).post("https://example.com/upload", body=body_chunks())

        assert exc_info.value.code == "ERR_STREAM_REPLAY"
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_strips_authorization_on_downgrade(self, sequence_transport):
        """Should drop Authorization when redirected from https to http."""
        transport = sequence_transport(redirect_to("http://example.com/b"), respond(200))
        client = create_client(agent=transport, headers={"Authorization": "Bearer secret"})

        await client.get("https://example.com/a")

        assert transport.requests[0].headers["authorization"] == "Bearer secret"
        assert "authorization" not in transport.requests[1].headers

    @pytest.mark.asyncio
    async def test_unsupported_location(self, sequence_transport):
        """Should raise UnsupportedProtocolError for a non-http location."""
        transport = sequence_transport(redirect_to("ftp://example.com/file"))

        with pytest.raises(UnsupportedProtocolError):
            await create_client(agent=transport).get("https://example.com/a")

    @pytest.mark.asyncio
    async def test_redirect_hooks(self, sequence_transport):
        """Should run before_redirect then before_request for every hop."""
        transport = sequence_transport(redirect_to("/b"), respond(200))
        calls = []

        def before_redirect(options, response):
            calls.append(("before_redirect", response.status_code, options.url))
            options.headers["x-hop"] = "2"

        def before_request(options):
            calls.append(("before_request", options.url))

        client = create_client(
            agent=transport,
            hooks={"before_redirect": [before_redirect], "before_request": [before_request]},
        )
        await client.get("https://example.com/a")

        assert calls == [
            ("before_request", "https://example.com/a"),
            ("before_redirect", 302, "https://example.com/b"),
            ("before_request", "https://example.com/b"),
        ]
        assert transport.requests[1].headers["x-hop"] == "2"
