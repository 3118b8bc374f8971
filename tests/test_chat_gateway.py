"""
test_chat_gateway.py — Tests for the chat service HTTP client.
"""

from __future__ import annotations

import json

import httpx
import pytest

from sereno.app.chat.gateway import HttpChatGateway, LoggingChatGateway
from sereno.app.core.errors import ExternalServiceError


def _gateway(handler):
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://chat.test",
    )
    return HttpChatGateway("http://chat.test", client=client)


class TestHttpChatGateway:

    async def test_create_channel(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(201, json={"channel_id": "c-42"})

        gateway = _gateway(handler)
        channel_id = await gateway.create_or_join_channel("a-1", ["owner-1", "s1"])
        await gateway.close()

        assert channel_id == "c-42"
        assert seen == [("POST", "/channels/emergency", {"alert_id": "a-1", "member_ids": ["owner-1", "s1"]})]

    async def test_share_and_archive(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(204)

        gateway = _gateway(handler)
        await gateway.share_context("c-42", {"alert_id": "a-1"})
        await gateway.archive_channel("c-42", "resolved_by:owner-1")
        await gateway.send_escalation_notice("c-42", "medical", "s1")

        assert paths == [
            "/channels/c-42/system-messages",
            "/channels/c-42/archive",
            "/channels/c-42/system-messages",
        ]

    async def test_http_error(self):
        gateway = _gateway(lambda request: httpx.Response(503))
        with pytest.raises(ExternalServiceError) as exc_info:
            await gateway.create_or_join_channel("a-1", ["owner-1"])
        assert exc_info.value.status_code == 502

    async def test_missing_channel_id(self):
        gateway = _gateway(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ExternalServiceError):
            await gateway.create_or_join_channel("a-1", ["owner-1"])

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = _gateway(handler)
        with pytest.raises(ExternalServiceError):
            await gateway.archive_channel("c-42", "x")


class TestLoggingChatGateway:

    async def test_members_accumulate(self):
        gateway = LoggingChatGateway()
        first = await gateway.create_or_join_channel("a-1", ["owner-1", "s1"])
        second = await gateway.create_or_join_channel("a-1", ["s1", "s2"])

        assert first == second == "emergency-a-1"
        assert gateway.channels[first] == ["owner-1", "s1", "s2"]
