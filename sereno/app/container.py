"""
Service container — builds every long-lived component once.

The FastAPI lifespan creates one container and stores it on
``app.state.container``; route dependencies read from there. Tests build
their own container with fakes (SQLite engine, recording transports).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from sereno.app.chat.gateway import ChatGateway, build_chat_gateway
from sereno.app.core.broadcast import EventBroadcaster, RedisEventBroadcaster
from sereno.app.core.config import settings
from sereno.app.core.database import build_engine, build_session_factory, close_db, init_db
from sereno.app.core.tasks import BackgroundTaskRunner
from sereno.app.emergency.accounts import AccountDirectory
from sereno.app.emergency.channel_binder import ChannelBinder
from sereno.app.emergency.contacts import ContactDirectory
from sereno.app.emergency.escalation import EscalationCoordinator, OfficialContactChannel
from sereno.app.emergency.lifecycle import AlertLifecycleManager
from sereno.app.emergency.matching import MatchPolicy, ResponderMatcher
from sereno.app.emergency.responders import ResponderService
from sereno.app.notifications.channels import PushTransport
from sereno.app.notifications.channels.fcm import FcmTransport
from sereno.app.notifications.channels.web_push import WebPushTransport
from sereno.app.notifications.dispatcher import NotificationDispatcher
from sereno.app.notifications.reminders import DailyReminderScheduler
from sereno.app.notifications.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    engine: AsyncEngine
    sessions: async_sessionmaker[AsyncSession]
    runner: BackgroundTaskRunner
    broadcaster: EventBroadcaster
    chat: ChatGateway
    web_push: PushTransport
    fcm: Optional[PushTransport]
    dispatcher: NotificationDispatcher
    subscriptions: SubscriptionService
    contacts: ContactDirectory
    accounts: AccountDirectory
    matcher: ResponderMatcher
    escalation: EscalationCoordinator
    binder: ChannelBinder
    lifecycle: AlertLifecycleManager
    responders: ResponderService
    reminders: DailyReminderScheduler

    @classmethod
    def build(
        cls,
        *,
        engine: Optional[AsyncEngine] = None,
        web_push: Optional[PushTransport] = None,
        fcm: Optional[PushTransport] = None,
        chat: Optional[ChatGateway] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        match_policy: Optional[MatchPolicy] = None,
        official_channel: Optional[OfficialContactChannel] = None,
    ) -> "ServiceContainer":
        engine = engine or build_engine()
        sessions = build_session_factory(engine)
        runner = BackgroundTaskRunner()
        broadcaster = broadcaster or RedisEventBroadcaster(enabled=settings.BROADCAST_ENABLED)
        chat = chat or build_chat_gateway()
        web_push = web_push or WebPushTransport()
        fcm = fcm if fcm is not None else FcmTransport()

        dispatcher = NotificationDispatcher(sessions, web_push=web_push, fcm=fcm)
        contacts = ContactDirectory(sessions)
        accounts = AccountDirectory(sessions)
        matcher = ResponderMatcher(sessions, match_policy)
        escalation = EscalationCoordinator(
            sessions, contacts, chat, broadcaster, runner, official_channel,
        )
        binder = ChannelBinder(sessions, chat)
        lifecycle = AlertLifecycleManager(
            sessions,
            accounts=accounts,
            matcher=matcher,
            dispatcher=dispatcher,
            escalation=escalation,
            binder=binder,
            broadcaster=broadcaster,
            runner=runner,
        )

        return cls(
            engine=engine,
            sessions=sessions,
            runner=runner,
            broadcaster=broadcaster,
            chat=chat,
            web_push=web_push,
            fcm=fcm,
            dispatcher=dispatcher,
            subscriptions=SubscriptionService(sessions),
            contacts=contacts,
            accounts=accounts,
            matcher=matcher,
            escalation=escalation,
            binder=binder,
            lifecycle=lifecycle,
            responders=ResponderService(sessions, accounts),
            reminders=DailyReminderScheduler(dispatcher),
        )

    async def startup(self) -> None:
        if settings.DATABASE_CREATE_TABLES:
            await init_db(self.engine)
        if settings.SEED_EMERGENCY_CONTACTS:
            await self.contacts.seed_defaults()
        if settings.DAILY_REMINDERS_ENABLED:
            await self.reminders.start()

    async def shutdown(self) -> None:
        await self.reminders.stop()
        await self.runner.shutdown()
        await self.chat.close()
        await self.broadcaster.close()
        await close_db(self.engine)
