"""
Shared fixtures: a throwaway SQLite database per test, recording fakes for
every external collaborator, and a fully wired ServiceContainer.
"""

from __future__ import annotations

import httpx
import pytest

from sereno.app.container import ServiceContainer
from sereno.app.core.database import build_engine, init_db

from support import FakeChat, FakeTransport, RecordingBroadcaster


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'sereno-test.db'}", echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def web_push() -> FakeTransport:
    return FakeTransport("web_push")


@pytest.fixture
def fcm() -> FakeTransport:
    return FakeTransport("fcm")


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
async def container(engine, web_push, fcm, chat, broadcaster):
    services = ServiceContainer.build(
        engine=engine,
        web_push=web_push,
        fcm=fcm,
        chat=chat,
        broadcaster=broadcaster,
    )
    yield services
    await services.runner.drain()


@pytest.fixture
async def client(container):
    from sereno.app.main import create_app

    app = create_app(container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
