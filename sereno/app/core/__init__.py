"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON / pretty logging
    middleware      — request logging, correlation IDs
    errors          — exception hierarchy & handlers
    database        — async SQLAlchemy engine and sessions
    security        — bearer token verification
    broadcast       — Redis pub/sub live alert events
    tasks           — tracked background side effects
    health          — health check aggregation
"""
