"""
test_api_notifications.py — HTTP tests for /api/v1/notifications.
"""

from __future__ import annotations

from sereno.app.core.config import settings

from support import auth_headers, make_user

BASE = "/api/v1/notifications"
USER = make_user("u1")
SUBSCRIPTION = {
    "endpoint": "https://push.example.com/device-1",
    "keys": {"p256dh": "BPubKey", "auth": "authsecret"},
    "device_info": {"platform": "android"},
}


class TestSubscriptions:

    async def test_subscribe_and_unsubscribe(self, client, container):
        created = await client.post(f"{BASE}/subscribe", json=SUBSCRIPTION, headers=auth_headers(USER))
        assert created.status_code == 201
        assert created.json()["subscription"]["endpoint"] == SUBSCRIPTION["endpoint"]

        # same endpoint again refreshes instead of duplicating
        await client.post(f"{BASE}/subscribe", json=SUBSCRIPTION, headers=auth_headers(USER))
        assert await container.subscriptions.count_subscriptions("u1") == 1

        removed = await client.request(
            "DELETE", f"{BASE}/unsubscribe",
            json={"endpoint": SUBSCRIPTION["endpoint"]},
            headers=auth_headers(USER),
        )
        assert removed.json()["removed"] is True
        assert await container.subscriptions.count_subscriptions("u1") == 0

    async def test_invalid_endpoint(self, client):
        response = await client.post(
            f"{BASE}/subscribe",
            json={**SUBSCRIPTION, "endpoint": "ftp://nope"},
            headers=auth_headers(USER),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_requires_token(self, client):
        response = await client.post(f"{BASE}/subscribe", json=SUBSCRIPTION)
        assert response.status_code == 401


class TestPreferencesEndpoints:

    async def test_defaults(self, client):
        response = await client.get(f"{BASE}/preferences", headers=auth_headers(USER))
        assert response.json()["preferences"] == {
            "emergency_alerts": True,
            "daily_reminders": True,
            "activity_updates": True,
            "sereno_responses": True,
            "push_enabled": True,
            "email_enabled": False,
        }

    async def test_partial_update(self, client):
        response = await client.put(
            f"{BASE}/preferences", json={"daily_reminders": False}, headers=auth_headers(USER),
        )

        prefs = response.json()["preferences"]
        assert prefs["daily_reminders"] is False
        assert prefs["emergency_alerts"] is True

    async def test_empty_update_rejected(self, client):
        response = await client.put(f"{BASE}/preferences", json={}, headers=auth_headers(USER))
        assert response.status_code == 400

    async def test_unknown_field_rejected(self, client):
        response = await client.put(
            f"{BASE}/preferences", json={"sms_enabled": True}, headers=auth_headers(USER),
        )
        assert response.status_code == 400


class TestTestNotification:

    async def test_delivers_to_own_devices(self, client, web_push):
        await client.post(f"{BASE}/subscribe", json=SUBSCRIPTION, headers=auth_headers(USER))

        response = await client.post(
            f"{BASE}/test", json={"title": "Hola"}, headers=auth_headers(USER),
        )

        assert response.status_code == 200
        assert response.json()["delivery"]["sent"] == 1
        assert web_push.sent[0][1]["title"] == "Hola"

    async def test_no_devices(self, client):
        response = await client.post(f"{BASE}/test", headers=auth_headers(USER))
        assert response.json()["delivery"]["skipped_reason"] == "no_subscriptions"


class TestVapidKey:

    async def test_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", "BPublicKey")
        response = await client.get(f"{BASE}/vapid-key")
        assert response.json() == {"public_key": "BPublicKey"}

    async def test_missing(self, client, monkeypatch):
        monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", "")
        response = await client.get(f"{BASE}/vapid-key")
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"
