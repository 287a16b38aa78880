"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in agencyflow/__init__.py with no default
limits; this module applies granular limits per route category. The
broadcast endpoint carries its own stricter limit (BROADCAST_RATE_LIMIT).

Usage:
    from agencyflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def requester_rate_limit_key():
    """Rate limit key: requester id if known, else remote IP."""
    requester = getattr(g, "requester", None)
    if requester is not None:
        return f"user:{requester.id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per requester, falling back to remote IP):
        - Project endpoints:       60/minute  (mutation heavy)
        - Notification endpoints:  200/minute (polled by the UI)

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("project_bp")
    if bp:
        limiter.limit(WRITE_LIMIT, key_func=requester_rate_limit_key)(bp)

    bp = app.blueprints.get("notification_bp")
    if bp:
        limiter.limit(READ_LIMIT, key_func=requester_rate_limit_key)(bp)

    app.logger.info(
        "Rate limiter configured: projects: %s, notifications: %s, broadcast: %s",
        WRITE_LIMIT, READ_LIMIT, app.config.get("BROADCAST_RATE_LIMIT"),
    )
