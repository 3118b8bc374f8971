"""
test_api_emergency.py — HTTP tests for /api/v1/emergency.

Status and error-code contract:
    VALIDATION_ERROR, ALREADY_ACTIVE, ALERT_NOT_ACTIVE  → 400
    AUTHENTICATION_REQUIRED                              → 401
    UNAUTHORIZED, ACCESS_DENIED                          → 403
    ALERT_NOT_FOUND                                      → 404
"""

from __future__ import annotations

import pytest

from support import add_responders, auth_headers, make_responder, make_user

BASE = "/api/v1/emergency"
OWNER = make_user()
SERENO = make_responder()
LOCATION = {"latitude": 19.4326, "longitude": -99.1332, "address": "Zócalo", "accuracy": 20}


def _code(response):
    return response.json()["error"]["code"]


async def _panic(client, principal=OWNER, **body):
    return await client.post(f"{BASE}/panic", json=body or None, headers=auth_headers(principal))


# ═══════════════════════════════════════════════════════════════════════════
# Panic / respond / resolve
# ═══════════════════════════════════════════════════════════════════════════

class TestPanic:

    async def test_activate(self, client):
        response = await _panic(client, location=LOCATION)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "ACTIVE"
        assert body["user_id"] == OWNER.id
        assert body["country"] == "MX"
        assert body["location"]["latitude"] == 19.4326
        assert body["responding_responders"] == []

    async def test_without_body(self, client):
        response = await client.post(f"{BASE}/panic", headers=auth_headers(OWNER))
        assert response.status_code == 201
        assert response.json()["location"] is None

    async def test_already_active(self, client):
        await _panic(client)
        response = await _panic(client)

        assert response.status_code == 400
        assert _code(response) == "ALREADY_ACTIVE"

    @pytest.mark.parametrize("location", [
        {"latitude": 91, "longitude": 0},
        {"latitude": 0, "longitude": -181},
        {"latitude": 0, "longitude": 0, "accuracy": -5},
        {"latitude": "19.4", "longitude": 0},
        {"longitude": 0},
    ])
    async def test_invalid_location(self, client, location):
        response = await _panic(client, location=location)

        assert response.status_code == 400
        assert _code(response) == "VALIDATION_ERROR"

    async def test_requires_token(self, client):
        response = await client.post(f"{BASE}/panic")
        assert response.status_code == 401
        assert _code(response) == "AUTHENTICATION_REQUIRED"

    async def test_rejects_garbage_token(self, client):
        response = await client.post(
            f"{BASE}/panic", headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401


class TestRespondAndResolve:

    async def test_full_flow(self, client, container):
        alert_id = (await _panic(client)).json()["alert_id"]

        responded = await client.put(
            f"{BASE}/alert/{alert_id}/respond", headers=auth_headers(SERENO),
        )
        assert responded.status_code == 200
        assert responded.json()["status"] == "RESPONDED"
        assert responded.json()["responding_responders"] == [SERENO.id]

        resolved = await client.put(
            f"{BASE}/alert/{alert_id}/resolve", headers=auth_headers(OWNER),
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "RESOLVED"
        assert resolved.json()["resolved_at"] is not None

        late = await client.put(
            f"{BASE}/alert/{alert_id}/respond", headers=auth_headers(make_responder("late")),
        )
        assert late.status_code == 400
        assert _code(late) == "ALERT_NOT_ACTIVE"
        await container.runner.drain()

    async def test_respond_requires_responder_role(self, client):
        alert_id = (await _panic(client)).json()["alert_id"]

        response = await client.put(
            f"{BASE}/alert/{alert_id}/respond", headers=auth_headers(make_user("u2")),
        )

        assert response.status_code == 403
        assert _code(response) == "UNAUTHORIZED"

    async def test_respond_unknown_alert(self, client):
        response = await client.put(f"{BASE}/alert/nope/respond", headers=auth_headers(SERENO))
        assert response.status_code == 404
        assert _code(response) == "ALERT_NOT_FOUND"

    async def test_resolve_by_non_owner(self, client):
        alert_id = (await _panic(client)).json()["alert_id"]

        response = await client.put(
            f"{BASE}/alert/{alert_id}/resolve", headers=auth_headers(SERENO),
        )

        assert response.status_code == 403
        assert _code(response) == "UNAUTHORIZED"

    async def test_resolve_twice(self, client):
        alert_id = (await _panic(client)).json()["alert_id"]
        await client.put(f"{BASE}/alert/{alert_id}/resolve", headers=auth_headers(OWNER))

        response = await client.put(
            f"{BASE}/alert/{alert_id}/resolve", headers=auth_headers(OWNER),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "RESOLVED"


# ═══════════════════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════════════════

class TestReads:

    async def test_get_alert_access(self, client):
        alert_id = (await _panic(client)).json()["alert_id"]

        owner_view = await client.get(f"{BASE}/alert/{alert_id}", headers=auth_headers(OWNER))
        sereno_view = await client.get(f"{BASE}/alert/{alert_id}", headers=auth_headers(SERENO))
        stranger = await client.get(
            f"{BASE}/alert/{alert_id}", headers=auth_headers(make_user("u2")),
        )

        assert owner_view.status_code == 200
        assert owner_view.json()["user"]["first_name"] == "Ana"
        assert sereno_view.status_code == 200
        assert stranger.status_code == 403
        assert _code(stranger) == "ACCESS_DENIED"

    async def test_get_unknown_alert(self, client):
        response = await client.get(f"{BASE}/alert/nope", headers=auth_headers(OWNER))
        assert response.status_code == 404

    async def test_active_list_for_responders(self, client):
        await _panic(client, make_user("u1", country="MX"))
        await _panic(client, make_user("u2", country="ES"))

        response = await client.get(f"{BASE}/active", headers=auth_headers(SERENO))

        assert response.status_code == 200
        assert [a["user_id"] for a in response.json()] == ["u1"]

    async def test_active_list_uses_mirrored_country(self, client, container):
        await add_responders(container, "no-claim", country="MX")
        await _panic(client)

        response = await client.get(
            f"{BASE}/active",
            headers=auth_headers(make_responder("no-claim", country=None)),
        )

        assert len(response.json()) == 1

    async def test_active_list_forbidden_for_users(self, client):
        response = await client.get(f"{BASE}/active", headers=auth_headers(OWNER))
        assert response.status_code == 403

    async def test_history(self, client):
        first = (await _panic(client)).json()["alert_id"]
        await client.put(f"{BASE}/alert/{first}/resolve", headers=auth_headers(OWNER))
        second = (await _panic(client)).json()["alert_id"]

        response = await client.get(f"{BASE}/history", headers=auth_headers(OWNER))

        assert [a["alert_id"] for a in response.json()] == [second, first]


# ═══════════════════════════════════════════════════════════════════════════
# Escalation and contacts
# ═══════════════════════════════════════════════════════════════════════════

class TestEscalateEndpoint:

    async def _responded_alert(self, client, container):
        alert_id = (await _panic(client)).json()["alert_id"]
        await client.put(f"{BASE}/alert/{alert_id}/respond", headers=auth_headers(SERENO))
        await container.runner.drain()
        return alert_id

    async def test_accepted(self, client, container):
        alert_id = await self._responded_alert(client, container)

        response = await client.post(
            f"{BASE}/alert/{alert_id}/escalate",
            json={"type": "medical"},
            headers=auth_headers(SERENO),
        )
        await container.runner.drain()

        assert response.status_code == 202
        assert response.json()["status"] == "requested"

    async def test_owner_lacks_role(self, client, container):
        alert_id = await self._responded_alert(client, container)

        response = await client.post(
            f"{BASE}/alert/{alert_id}/escalate",
            json={"type": "medical"},
            headers=auth_headers(OWNER),
        )

        assert response.status_code == 403
        assert _code(response) == "UNAUTHORIZED"

    async def test_responder_not_on_alert(self, client, container):
        alert_id = await self._responded_alert(client, container)

        response = await client.post(
            f"{BASE}/alert/{alert_id}/escalate",
            json={"type": "police"},
            headers=auth_headers(make_responder("sereno-2")),
        )

        assert response.status_code == 403
        assert _code(response) == "ACCESS_DENIED"

    async def test_invalid_type(self, client, container):
        alert_id = await self._responded_alert(client, container)

        response = await client.post(
            f"{BASE}/alert/{alert_id}/escalate",
            json={"type": "firefighters"},
            headers=auth_headers(SERENO),
        )

        assert response.status_code == 400
        assert _code(response) == "VALIDATION_ERROR"


class TestContactsEndpoint:

    async def test_public_lookup(self, client):
        response = await client.get(f"{BASE}/contacts/mx")

        assert response.status_code == 200
        body = response.json()
        assert body["country"] == "MX"
        assert body["contacts"][0]["id"] == "mx-saptel"

    async def test_generic_fallback(self, client):
        response = await client.get(f"{BASE}/contacts/fr")
        assert [c["id"] for c in response.json()["contacts"]] == ["fr-generic"]

    async def test_bad_code(self, client):
        response = await client.get(f"{BASE}/contacts/mex")
        assert response.status_code == 400
        assert _code(response) == "VALIDATION_ERROR"


# ═══════════════════════════════════════════════════════════════════════════
# Responder profile
# ═══════════════════════════════════════════════════════════════════════════

class TestResponderEndpoints:

    async def test_register_then_go_available(self, client):
        registered = await client.post(
            f"{BASE}/responder/register",
            json={"specializations": ["anxiety"]},
            headers=auth_headers(make_user("new")),
        )
        assert registered.status_code == 201
        assert registered.json()["verification_status"] == "pending"

        available = await client.put(
            f"{BASE}/responder/availability",
            json={"is_available": True, "location": {"latitude": 19.4, "longitude": -99.1}},
            headers=auth_headers(make_responder("new")),
        )
        assert available.status_code == 200
        assert available.json()["is_available"] is True

    async def test_availability_without_profile(self, client):
        response = await client.put(
            f"{BASE}/responder/availability",
            json={"is_available": True},
            headers=auth_headers(SERENO),
        )
        assert response.status_code == 404

    async def test_stats(self, client):
        response = await client.get(f"{BASE}/responder/stats", headers=auth_headers(SERENO))
        assert response.status_code == 200
        assert response.json()["total_responses"] == 0


async def test_health(client):
    live = await client.get("/health/live")
    ready = await client.get("/health/ready")

    assert live.json() == {"status": "alive"}
    assert ready.status_code == 200
    assert {c["name"] for c in ready.json()["components"]} == {
        "database", "redis", "push", "background_tasks",
    }
