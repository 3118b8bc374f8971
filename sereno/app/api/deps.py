"""
FastAPI dependencies that hand out the long-lived services.
"""

from __future__ import annotations

from fastapi import Request

from sereno.app.container import ServiceContainer
from sereno.app.emergency.contacts import ContactDirectory
from sereno.app.emergency.escalation import EscalationCoordinator
from sereno.app.emergency.lifecycle import AlertLifecycleManager
from sereno.app.emergency.responders import ResponderService
from sereno.app.notifications.dispatcher import NotificationDispatcher
from sereno.app.notifications.subscriptions import SubscriptionService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_lifecycle(request: Request) -> AlertLifecycleManager:
    return get_container(request).lifecycle


def get_escalation(request: Request) -> EscalationCoordinator:
    return get_container(request).escalation


def get_contacts(request: Request) -> ContactDirectory:
    return get_container(request).contacts


def get_responders(request: Request) -> ResponderService:
    return get_container(request).responders


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return get_container(request).dispatcher


def get_subscriptions(request: Request) -> SubscriptionService:
    return get_container(request).subscriptions
