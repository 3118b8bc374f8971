"""
test_notification_models.py — Tests for categories, preferences and the
service-worker payload shape.
"""

from __future__ import annotations

import pytest

from sereno.app.notifications import templates
from sereno.app.notifications.models import (
    CATEGORY_PREFERENCES,
    NotificationCategory,
    PreferenceFlag,
    PreferenceSettings,
)


class TestCategoryPreferences:

    def test_every_category_mapped(self):
        assert set(CATEGORY_PREFERENCES) == set(NotificationCategory)

    def test_every_flag_is_a_preference_field(self):
        fields = PreferenceSettings().to_dict()
        for flag in PreferenceFlag:
            assert flag.value in fields

    @pytest.mark.parametrize("category, flag", [
        (NotificationCategory.EMERGENCY_ALERT, PreferenceFlag.EMERGENCY_ALERTS),
        (NotificationCategory.SERENO_RESPONSE, PreferenceFlag.EMERGENCY_ALERTS),
        (NotificationCategory.EMERGENCY_RESOLVED, PreferenceFlag.EMERGENCY_ALERTS),
        (NotificationCategory.DAILY_REMINDER, PreferenceFlag.DAILY_REMINDERS),
        (NotificationCategory.ACTIVITY_UPDATE, PreferenceFlag.ACTIVITY_UPDATES),
        (NotificationCategory.SERENO_RESPONDED, PreferenceFlag.SERENO_RESPONSES),
        (NotificationCategory.TEST, PreferenceFlag.PUSH_ENABLED),
    ])
    def test_mapping(self, category, flag):
        assert CATEGORY_PREFERENCES[category] is flag


class TestPreferenceSettings:

    def test_defaults(self):
        prefs = PreferenceSettings.from_row(None)
        assert prefs.push_enabled is True
        assert prefs.email_enabled is False
        assert all(prefs.allows(c) for c in NotificationCategory)

    def test_master_switch(self):
        prefs = PreferenceSettings(push_enabled=False)
        assert not any(prefs.allows(c) for c in NotificationCategory)

    def test_single_flag(self):
        prefs = PreferenceSettings(daily_reminders=False)
        assert not prefs.allows(NotificationCategory.DAILY_REMINDER)
        assert prefs.allows(NotificationCategory.EMERGENCY_ALERT)


class TestWireFormat:

    def test_emergency_alert_requires_interaction(self):
        wire = templates.emergency_alert("a-1", {"latitude": 1.0, "longitude": 2.0}).to_wire()

        assert wire["tag"] == "emergency_alert"
        assert wire["requireInteraction"] is True
        assert wire["data"] == {
            "alert_id": "a-1",
            "action": "respond_emergency",
            "url": "/emergency/a-1",
            "location": {"latitude": 1.0, "longitude": 2.0},
            "type": "emergency_alert",
        }
        assert [a["action"] for a in wire["actions"]] == ["respond", "view_location"]

    @pytest.mark.parametrize("payload", [
        templates.responder_on_the_way("a-1", "Luis"),
        templates.emergency_resolved("a-1"),
        templates.daily_reminder(),
        templates.test_message(),
    ])
    def test_other_categories_do_not_require_interaction(self, payload):
        assert payload.to_wire()["requireInteraction"] is False

    def test_default_name_for_responder(self):
        wire = templates.responder_on_the_way("a-1", "Un SERENO").to_wire()
        assert wire["body"].startswith("Un SERENO")

    def test_test_message_overrides(self):
        wire = templates.test_message("Hola", "Prueba").to_wire()
        assert (wire["title"], wire["body"]) == ("Hola", "Prueba")

    def test_unknown_activity_kind(self):
        with pytest.raises(ValueError):
            templates.activity("Yoga", "act-1", "cancelled")
