"""
notifications — Push notification delivery.

Sub-modules:
    channels/      — Transports (Web Push via pywebpush, FCM via firebase-admin)
    dispatcher     — Preference gating, concurrent fan-out, logging, pruning
    subscriptions  — Subscribe / unsubscribe / preferences
    templates      — Notification copy per category
    reminders      — Daily reminder scheduler
    models         — Tables, enums and value objects
"""
