"""
Tests for the options resolver.
"""
import httpx
import pytest

from fetch_pipeline import create_client
from fetch_pipeline.cache import MappingCacheStore
from fetch_pipeline.config import ClientConfig, TimeoutConfig
from fetch_pipeline.core.options_resolver import resolve_options, resolve_redirect_options
from fetch_pipeline.core.request_builder import build_url
from fetch_pipeline.errors import ConfigurationError, RequestError, UnsupportedProtocolError
from fetch_pipeline.types import HookName


def first_hook(options):
    pass


def second_hook(options):
    pass


def third_hook(options):
    pass


async def body_chunks():
    yield b"chunk"


class TestResolveOptions:
    """Tests for resolve_options."""

    def test_fills_every_default(self):
        """Should populate defaults for a bare URL."""
        options = resolve_options("https://example.com/users")

        assert options.url == "https://example.com/users"
        assert options.method == "GET"
        assert options.follow_redirect is True
        assert options.max_redirects == 10
        assert options.throw_http_errors is True
        assert options.decompress is True
        assert options.encoding == "utf-8"
        assert options.headers["user-agent"].startswith("fetch-pipeline/")
        assert options.headers["accept-encoding"] == "gzip, deflate"
        assert set(options.hooks) == set(HookName)

    def test_is_idempotent(self):
        """Should resolve equal options from the same input twice."""
        config = ClientConfig(options={"headers": {"x-a": "1"}, "hooks": {"before_request": [first_hook]}})
        explicit = {"json": True, "body": {"a": 1}, "method": "post", "timeout": 3, "cache": {}}

        first = resolve_options("https://example.com", explicit, config)
        second = resolve_options("https://example.com", explicit, config)

        assert first == second
        assert first is not second
        assert first.headers is not second.headers

    def test_does_not_share_headers_with_defaults(self):
        """Should give each resolution its own headers dict."""
        config = ClientConfig(options={"headers": {"x-a": "1"}})
        options = resolve_options("https://example.com", {}, config)
        options.headers["x-a"] = "mutated"

        assert config.defaults["headers"]["x-a"] == "1"

    def test_uppercases_method(self):
        """Should upper-case the method."""
        assert resolve_options("https://example.com", {"method": "delete"}).method == "DELETE"

    def test_scalar_timeout_and_max_retry_after(self):
        """Should derive max_retry_after from the request timeout."""
        options = resolve_options("https://example.com", {"timeout": 4})
        assert options.timeout == TimeoutConfig(request=4.0)
        assert options.retry.max_retry_after == 4.0

    def test_json_sets_accept(self):
        """Should ask for JSON when json=True."""
        options = resolve_options("https://example.com", {"json": True})
        assert options.headers["accept"] == "application/json"

    def test_wraps_dict_cache(self):
        """Should wrap a plain dict cache in a store."""
        cache = {}
        options = resolve_options("https://example.com", {"cache": cache})
        assert options.cache == MappingCacheStore(cache)

    @pytest.mark.parametrize(
        "url, explicit",
        [
            (None, {}),
            ("https://example.com", {"json": True, "form": True}),
            ("https://example.com", {"method": "POST", "json": True, "body": "text"}),
            ("https://example.com", {"method": "POST", "form": True, "body": ["a"]}),
            ("https://example.com", {"method": "POST", "body": {"a": 1}}),
            ("https://example.com", {"method": "POST", "body": 42}),
            (
                "https://example.com",
                {"method": "POST", "json": True, "body": {"a": 1}, "headers": {"content-type": "text/plain"}},
            ),
            ("https://example.com", {"body": "payload"}),
            ("https://example.com", {"method": "HEAD", "body": b"payload"}),
            ("https://example.com", {"max_redirects": -1}),
            ("https://example.com", {"encoding": "no-such-codec"}),
            ("https://example.com", {"agent": object()}),
            ("https://example.com", {"hooks": {"after_response": [first_hook]}}),
            ("https://example.com", {"unknown_option": True}),
            ("/relative", {}),
        ],
    )
    def test_rejects_invalid_options(self, url, explicit):
        """Should raise ConfigurationError for inconsistent options."""
        with pytest.raises(ConfigurationError):
            resolve_options(url, explicit)

    def test_accepts_json_content_type_variants(self):
        """Should accept an explicit JSON content-type with json=True."""
        options = resolve_options(
            "https://example.com",
            {"method": "POST", "json": True, "body": [1], "headers": {"Content-Type": "application/vnd.api+json"}},
        )
        assert options.headers["content-type"] == "application/vnd.api+json"

    def test_accepts_iterator_body(self):
        """Should accept an async iterator body."""
        options = resolve_options("https://example.com", {"method": "PUT", "body": body_chunks()})
        assert options.method == "PUT"


class TestBuildUrl:
    """Tests for URL composition."""

    def test_base_url_keeps_base_path(self):
        """Should append a rooted path to the base path."""
        assert build_url("https://api.example.com/v1", "/users") == "https://api.example.com/v1/users"

    def test_base_url_with_relative_path(self):
        """Should join a relative path under the base path."""
        assert build_url("https://api.example.com/v1", "users") == "https://api.example.com/v1/users"

    def test_absolute_url_ignores_base_url(self):
        """Should silently ignore base_url when the url is absolute."""
        assert build_url("https://api.example.com/v1", "https://other.example.com/x") == "https://other.example.com/x"

    def test_adds_https_to_scheme_less_url(self):
        """Should default a scheme-less URL to https."""
        assert build_url(None, "example.com/path") == "https://example.com/path"

    def test_query_replaces_url_query(self):
        """Should replace the query string of the URL."""
        url = build_url(None, "https://example.com/search?q=old&page=2", {"q": "new"})
        assert httpx.URL(url).params == httpx.QueryParams({"q": "new"})

    def test_query_accepts_string(self):
        """Should accept a pre-encoded query string."""
        assert build_url(None, "https://example.com/s", "a=1&b=2") == "https://example.com/s?a=1&b=2"


class TestExtendComposition:
    """Tests for resolving through extended clients."""

    def test_extend_chain_equals_sequential_overrides(self):
        """Should resolve a.extend(x).extend(y) as a, then x, then y."""
        a = create_client(headers={"x-a": "1", "x-shared": "a"}, hooks={"before_request": [first_hook]}, retry=1)
        x = {"headers": {"x-shared": "x"}, "hooks": {"before_request": [second_hook]}, "json": True}
        y = {"headers": {"x-y": "y"}, "hooks": {"before_request": [third_hook]}, "retry": 3}

        extended = a.extend(**x).extend(**y).resolve("https://example.com")

        assert extended.hooks[HookName.BEFORE_REQUEST] == (first_hook, second_hook, third_hook)
        assert extended.headers["x-a"] == "1"
        assert extended.headers["x-shared"] == "x"
        assert extended.headers["x-y"] == "y"
        assert extended.json is True
        assert extended.retry.retries == 3

        flat = create_client(
            headers={"x-a": "1", "x-shared": "x", "x-y": "y"},
            hooks={"before_request": [first_hook, second_hook, third_hook]},
            json=True,
            retry=3,
        ).resolve("https://example.com")
        assert extended == flat

    def test_extend_without_options_is_clone(self):
        """Should resolve identically to the parent when extended with nothing."""
        parent = create_client(base_url="https://api.example.com", json=True)
        clone = parent.extend()

        assert clone is not parent
        assert clone.resolve("/users") == parent.resolve("/users")

    def test_extend_does_not_mutate_parent(self):
        """Should leave the parent's defaults unchanged."""
        parent = create_client(headers={"x-a": "1"})
        parent.extend(headers={"x-a": "2"}, json=True)

        assert parent.defaults["headers"] == {"x-a": "1"}
        assert parent.defaults["json"] is False


class TestResolveRedirectOptions:
    """Tests for resolve_redirect_options."""

    def test_303_switches_to_get(self):
        """Should switch to GET and drop the body and content headers on 303."""
        options = resolve_options(
            "https://example.com/form",
            {"method": "POST", "body": "a=1", "headers": {"content-type": "application/x-www-form-urlencoded"}},
        )
        next_options = resolve_redirect_options(options, "/done", 303, options.url)

        assert next_options.method == "GET"
        assert next_options.body is None
        assert "content-type" not in next_options.headers
        assert next_options.url == "https://example.com/done"
        assert options.method == "POST"

    def test_307_keeps_method_and_body(self):
        """Should keep method and body on 307."""
        options = resolve_options("https://example.com/a", {"method": "PUT", "body": b"data"})
        next_options = resolve_redirect_options(options, "https://example.com/b", 307, options.url)
        assert next_options.method == "PUT"
        assert next_options.body == b"data"

    def test_307_with_streamed_body_fails(self):
        """Should refuse to replay a streamed body."""
        options = resolve_options("https://example.com/a", {"method": "POST", "body": body_chunks()})
        with pytest.raises(RequestError) as exc_info:
            resolve_redirect_options(options, "/b", 307, options.url)
        assert exc_info.value.code == "ERR_STREAM_REPLAY"

    def test_strips_authorization_on_downgrade(self):
        """Should drop Authorization on an https -> http redirect."""
        options = resolve_options("https://example.com/a", {"headers": {"Authorization": "Bearer t"}})
        next_options = resolve_redirect_options(options, "http://example.com/b", 302, options.url)
        assert "authorization" not in next_options.headers

    def test_keeps_authorization_without_downgrade(self):
        """Should keep Authorization when the scheme is not downgraded."""
        options = resolve_options("https://example.com/a", {"headers": {"Authorization": "Bearer t"}})
        next_options = resolve_redirect_options(options, "https://other.example.com/b", 302, options.url)
        assert next_options.headers["authorization"] == "Bearer t"

    def test_rejects_unsupported_scheme(self):
        """Should raise UnsupportedProtocolError for a non-http location."""
        options = resolve_options("https://example.com/a")
        with pytest.raises(UnsupportedProtocolError):
            resolve_redirect_options(options, "ftp://example.com/file", 302, options.url)
