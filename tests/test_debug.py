"""
Tests for debug panels and header masking.
"""
import io

import httpx
import pytest
from rich.console import Console

from conftest import respond
from fetch_pipeline import create_client, debug
from fetch_pipeline.debug import mask_headers, mask_sensitive


@pytest.fixture
def captured(monkeypatch):
    """Redirect the debug console into a buffer."""
    buffer = io.StringIO()
    monkeypatch.setattr(debug, "console", Console(file=buffer, width=200, color_system=None))
    return buffer


class TestMasking:
    """Tests for credential masking."""

    def test_mask_sensitive(self):
        """Should keep the first characters only."""
        assert mask_sensitive("abcdefgh") == "abcd***"
        assert mask_sensitive("abc") == "***"
        assert mask_sensitive(None) == "<none>"

    def test_mask_headers(self):
        """Should mask credentials and leave other headers alone."""
        masked = mask_headers({
            "Authorization": "Bearer secret-token-value",
            "x-api-key": "key-123456",
            "accept": "application/json",
        })

        assert masked["Authorization"] == "Bearer secret-t***"
        assert masked["x-api-key"] == "key-***"
        assert masked["accept"] == "application/json"


class TestDebugOutput:
    """Tests for debug=True request output."""

    @pytest.mark.asyncio
    async def test_prints_request_and_response(self, captured, sequence_transport):
        """Should print masked request and response panels."""
        transport = sequence_transport(respond(200, json={"ok": True}))
        client = create_client(agent=transport, debug=True, json=True)

        await client.post(
            "https://example.com/items",
            body={"name": "widget"},
            headers={"authorization": "Bearer secret-token-value"},
        )

        output = captured.getvalue()
        assert "POST" in output
        assert "https://example.com/items" in output
        assert "Bearer secret-t***" in output
        assert "secret-token-value" not in output
        assert "200 OK" in output

    @pytest.mark.asyncio
    async def test_prints_errors(self, captured, sequence_transport):
        """Should print the terminal error."""
        transport = sequence_transport(respond(500))
        client = create_client(agent=transport, debug=True, retry=0)

        with pytest.raises(Exception):
            await client.get("https://example.com/")

        assert "HTTPError" in captured.getvalue()

    @pytest.mark.asyncio
    async def test_env_enables_debug(self, captured, monkeypatch, sequence_transport):
        """Should turn on debug output with FETCH_PIPELINE_DEBUG=1."""
        monkeypatch.setenv("FETCH_PIPELINE_DEBUG", "1")
        transport = sequence_transport(respond(200))

        await create_client(agent=transport).get("https://example.com/env")

        assert "https://example.com/env" in captured.getvalue()

    def test_quiet_by_default(self, captured, monkeypatch):
        """Should not print anything without debug."""
        monkeypatch.delenv("FETCH_PIPELINE_DEBUG", raising=False)
        options = create_client().resolve("https://example.com/")

        assert options.debug is False
        assert captured.getvalue() == ""
        assert isinstance(options.headers, dict)
        assert httpx.URL(options.url).host == "example.com"
