"""
test_core.py — Tests for tokens, background tasks and live events.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from sereno.app.core.broadcast import RedisEventBroadcaster, alert_channel
from sereno.app.core.errors import AuthenticationError
from sereno.app.core.security import Role, create_access_token, decode_access_token
from sereno.app.core.tasks import BackgroundTaskRunner


class TestTokens:

    def test_round_trip_claims(self):
        token = create_access_token("u1", role="sereno", country="mx", first_name="Luis")
        principal = decode_access_token(token)

        assert principal.id == "u1"
        assert principal.role is Role.RESPONDER
        assert principal.country == "MX"
        assert principal.first_name == "Luis"

    @pytest.mark.parametrize("raw, role", [
        ("responder", Role.RESPONDER),
        ("SERENO", Role.RESPONDER),
        ("user", Role.USER),
        (None, Role.USER),
        ("admin", Role.USER),
    ])
    def test_role_parsing(self, raw, role):
        assert Role.parse(raw) is role

    def test_expired_token(self):
        token = create_access_token("u1", expires_minutes=-1)
        with pytest.raises(AuthenticationError):
            decode_access_token(token)


class TestBackgroundTaskRunner:

    async def test_drain_waits_for_nested_spawns(self):
        runner = BackgroundTaskRunner()
        done = []

        async def child():
            await asyncio.sleep(0)
            done.append("child")

        async def parent():
            runner.spawn(child(), name="child")
            done.append("parent")

        runner.spawn(parent(), name="parent")
        await runner.drain()

        assert done == ["parent", "child"]
        assert runner.stats() == {"pending": 0, "completed": 2, "failed": 0}

    async def test_failures_are_counted_not_raised(self):
        runner = BackgroundTaskRunner()

        async def boom():
            raise RuntimeError("boom")

        runner.spawn(boom(), name="boom")
        await runner.drain()

        assert runner.stats()["failed"] == 1

    async def test_shutdown_cancels_stragglers(self):
        runner = BackgroundTaskRunner()
        runner.spawn(asyncio.sleep(30), name="slow")

        await runner.shutdown(timeout=0.01)
        await asyncio.sleep(0.05)

        assert runner.pending == 0


class FakeRedis:
    def __init__(self, fail=False):
        self.published = []
        self.fail = fail

    async def publish(self, channel, message):
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, json.loads(message)))
        return 2

    async def ping(self):
        return True

    async def aclose(self):
        return None


class TestRedisEventBroadcaster:

    async def test_disabled(self):
        assert await RedisEventBroadcaster(enabled=False).publish("a-1", "alert-created", {}) is False

    async def test_publish_on_alert_channel(self):
        broadcaster = RedisEventBroadcaster(enabled=True)
        broadcaster._client = FakeRedis()

        assert await broadcaster.publish("a-1", "responder-joined", {"responder_id": "s1"})

        [(channel, message)] = broadcaster._client.published
        assert channel == alert_channel("a-1") == "emergency-a-1"
        assert message["event"] == "responder-joined"
        assert message["data"] == {"responder_id": "s1"}

    async def test_publish_failure_is_swallowed(self):
        broadcaster = RedisEventBroadcaster(enabled=True)
        broadcaster._client = FakeRedis(fail=True)

        assert await broadcaster.publish("a-1", "alert-resolved", {}) is False
