"""Tests for the WxPush transport."""

import httpx
import pytest

from backend.src.core.config import settings
from backend.src.services.push_transport import WxPushTransport


def make_transport(handler) -> WxPushTransport:
    return WxPushTransport(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_send_passes_template_parameters():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = request.url
        return httpx.Response(200, json={"success": True})

    transport = make_transport(handler)
    result = await transport.send("wx-alice", "Back in stock", "body text", "https://example.com/p")

    assert result.success
    params = captured["url"].params
    assert str(captured["url"]).startswith(settings.WXPUSH_URL)
    assert params["userid"] == "wx-alice"
    assert params["title"] == "Back in stock"
    assert params["content"] == "body text"
    assert params["base_url"] == "https://example.com/p"

    await transport.close()


@pytest.mark.asyncio
async def test_non_2xx_is_a_failure():
    transport = make_transport(lambda request: httpx.Response(500, text="boom"))

    result = await transport.send("wx-alice", "t", "b")

    assert not result.success
    assert "HTTP 500" in result.error

    await transport.close()


@pytest.mark.asyncio
async def test_relay_rejection_is_a_failure():
    transport = make_transport(
        lambda request: httpx.Response(200, json={"success": False, "error": "bad token"})
    )

    result = await transport.send("wx-alice", "t", "b")

    assert not result.success
    assert result.error == "bad token"

    await transport.close()


@pytest.mark.asyncio
async def test_network_errors_never_raise():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = make_transport(handler)

    result = await transport.send("wx-alice", "t", "b")

    assert not result.success
    assert result.error.startswith("Request error")

    await transport.close()


@pytest.mark.asyncio
async def test_timeout_is_reported():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    transport = make_transport(handler)

    result = await transport.send("wx-alice", "t", "b")

    assert not result.success
    assert "timeout" in result.error

    await transport.close()
