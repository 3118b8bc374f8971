"""
test_responders.py — Tests for SERENO registration, availability and stats.
"""

from __future__ import annotations

import pytest

from sereno.app.core.errors import NotFoundError, ValidationError
from sereno.app.emergency.models import GeoLocation, ResponderAvailability

from support import make_responder, make_user


class TestRegister:

    async def test_registration_grants_responder_role(self, container):
        result = await container.responders.register(
            make_user("new-sereno"), specializations=["anxiety", "grief"],
        )

        assert result["verification_status"] == "pending"
        assert result["is_available"] is False
        account = await container.accounts.get("new-sereno")
        assert account.role == "responder"

    async def test_registered_responder_is_matched(self, container):
        await container.responders.register(make_user("new-sereno"), specializations=[])
        assert await container.matcher.find_candidates("MX") == ["new-sereno"]

    async def test_register_again_updates_profile(self, container):
        await container.responders.register(make_user("s1"), specializations=["a"])
        result = await container.responders.register(
            make_user("s1"), specializations=["b"], availability_start="07:30",
        )
        assert result["specializations"] == ["b"]
        assert result["availability_hours"]["start"] == "07:30"

    @pytest.mark.parametrize("kwargs, field", [
        ({"availability_start": "25:00"}, "availability_start"),
        ({"availability_end": "9pm"}, "availability_end"),
        ({"max_response_distance_km": 0}, "max_response_distance_km"),
    ])
    async def test_invalid_input(self, container, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            await container.responders.register(make_user("s1"), specializations=[], **kwargs)
        assert exc_info.value.details["field"] == field


class TestAvailability:

    async def test_requires_profile(self, container):
        with pytest.raises(NotFoundError):
            await container.responders.update_availability(make_responder("ghost"), True)

    async def test_stores_location(self, container):
        await container.responders.register(make_user("s1"), specializations=[])
        location = GeoLocation(latitude=19.4, longitude=-99.1)

        result = await container.responders.update_availability(
            make_responder("s1"), True, location,
        )

        assert result["is_available"] is True
        async with container.sessions() as session:
            row = await session.get(ResponderAvailability, "s1")
        assert row.is_available is True
        assert row.latitude == 19.4
        assert row.last_location_update is not None

    async def test_rejects_bad_location(self, container):
        await container.responders.register(make_user("s1"), specializations=[])
        with pytest.raises(ValidationError):
            await container.responders.update_availability(
                make_responder("s1"), True, GeoLocation(latitude=100.0, longitude=0.0),
            )


class TestStats:

    async def test_no_responses(self, container):
        stats = await container.responders.stats("s1")
        assert stats.to_dict() == {
            "total_responses": 0,
            "resolved_responses": 0,
            "success_rate": 0.0,
            "average_response_time_seconds": None,
        }

    async def test_counts_resolved(self, container):
        for owner in ("u1", "u2", "u3"):
            alert = await container.lifecycle.activate(make_user(owner))
            await container.lifecycle.respond(alert.id, make_responder("s1"))
            if owner != "u3":
                await container.lifecycle.resolve(alert.id, owner)

        stats = await container.responders.stats("s1")

        assert stats.total_responses == 3
        assert stats.resolved_responses == 2
        assert stats.success_rate == 66.67
        assert stats.average_response_time_seconds >= 0
