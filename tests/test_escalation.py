"""
test_escalation.py — Tests for escalation requests and official contacts.
"""

from __future__ import annotations

import pytest

from sereno.app.core.errors import (
    AlertNotActiveError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from sereno.app.emergency.escalation import parse_escalation_type
from sereno.app.emergency.models import AlertResponder, EscalationType

from support import make_responder, make_user


class RecordingOfficialChannel:
    def __init__(self, refuse=()):
        self.calls = []
        self.refuse = set(refuse)

    async def notify(self, contact, alert_id):
        self.calls.append((contact.id, alert_id))
        if contact.id in self.refuse:
            raise ConnectionError("line busy")
        return True


class TestParseEscalationType:

    @pytest.mark.parametrize("raw, expected", [
        ("medical", EscalationType.MEDICAL),
        (" POLICE ", EscalationType.POLICE),
        ("crisis_center", EscalationType.CRISIS_CENTER),
    ])
    def test_valid(self, raw, expected):
        assert parse_escalation_type(raw) is expected

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_escalation_type("fire")
        assert exc_info.value.details["field"] == "type"


async def _join_without_channel(container, alert_id, responder_id):
    """Membership row only; no chat channel gets bound."""
    async with container.sessions() as session:
        session.add(AlertResponder(alert_id=alert_id, responder_id=responder_id))
        await session.commit()


class TestEscalate:

    async def test_responding_responder_can_escalate(self, container, chat, broadcaster):
        alert = await container.lifecycle.activate(make_user())
        await container.lifecycle.respond(alert.id, make_responder("s1"))
        await container.runner.drain()

        result = await container.escalation.escalate(alert.id, "police", "s1")
        await container.runner.drain()

        assert result == {"alert_id": alert.id, "type": "police", "status": "requested"}
        assert chat.escalations == [(f"chan-{alert.id}", "police", "s1")]
        assert broadcaster.names(alert.id)[-1] == "escalation-requested"

    async def test_without_channel_only_event(self, container, chat, broadcaster):
        alert = await container.lifecycle.activate(make_user())
        await _join_without_channel(container, alert.id, "s1")

        await container.escalation.escalate(alert.id, "crisis_center", "s1")
        await container.runner.drain()

        assert chat.escalations == []
        assert broadcaster.names(alert.id)[-1] == "escalation-requested"

    async def test_owner_denied(self, container):
        alert = await container.lifecycle.activate(make_user())

        with pytest.raises(AuthorizationError) as exc_info:
            await container.escalation.escalate(alert.id, "medical", "owner-1")
        assert exc_info.value.error_code == "ACCESS_DENIED"

    async def test_responder_not_on_alert_denied(self, container):
        alert = await container.lifecycle.activate(make_user())

        with pytest.raises(AuthorizationError) as exc_info:
            await container.escalation.escalate(alert.id, "medical", "sereno-9")
        assert exc_info.value.error_code == "ACCESS_DENIED"

    async def test_unknown_alert(self, container):
        with pytest.raises(NotFoundError) as exc_info:
            await container.escalation.escalate("missing", "medical", "s1")
        assert exc_info.value.error_code == "ALERT_NOT_FOUND"

    async def test_resolved_alert(self, container):
        alert = await container.lifecycle.activate(make_user())
        await _join_without_channel(container, alert.id, "s1")
        await container.lifecycle.resolve(alert.id, "owner-1")

        with pytest.raises(AlertNotActiveError):
            await container.escalation.escalate(alert.id, "medical", "s1")

    async def test_bad_type_checked_first(self, container):
        with pytest.raises(ValidationError):
            await container.escalation.escalate("missing", "fire", "s1")


class TestOfficialContacts:

    @pytest.fixture
    def official(self, container):
        channel = RecordingOfficialChannel()
        container.escalation._official_channel = channel
        return channel

    async def test_auto_contacts_for_country(self, container, official):
        alert = await container.lifecycle.activate(make_user(country="ES"))
        await container.runner.drain()

        assert official.calls == [("es-telefono-esperanza", alert.id)]
        stored = await container.lifecycle.get_alert(alert.id, make_user())
        assert stored.official_contacts_notified == ["es-telefono-esperanza"]

    async def test_failed_contact_not_recorded(self, container, official):
        official.refuse.add("mx-saptel")
        alert = await container.lifecycle.activate(make_user(country="MX"))
        await container.runner.drain()

        stored = await container.lifecycle.get_alert(alert.id, make_user())
        assert stored.official_contacts_notified == []

    async def test_unknown_country_has_no_auto_contacts(self, container, official):
        alert = await container.lifecycle.activate(make_user(country="FR"))
        await container.runner.drain()

        assert official.calls == []

    async def test_no_country(self, container, official):
        assert await container.escalation.notify_official_contacts("a-1", None) == []
        assert official.calls == []
