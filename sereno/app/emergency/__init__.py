"""
emergency — Panic alerts and the SERENO response flow.

Sub-modules:
    lifecycle       — Alert state machine: activate, respond, resolve, queries
    matching        — Responder candidate policies (country, proximity)
    escalation      — Official services: escalation requests, auto-contacts
    channel_binder  — Alert ↔ chat channel binding
    contacts        — Emergency contact directory per country
    responders      — Responder registration, availability, stats
    accounts        — Local mirror of identity data
    models          — Tables, enums and read models
"""
