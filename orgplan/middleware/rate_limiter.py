"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in orgplan/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from orgplan.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

PLAN_LIMIT = "120/minute"
SHARING_LIMIT = "30/minute"
ENTRY_LIMIT = "60/minute"


def rate_limit_key():
    """Key by caller email when known, else by remote address."""
    email = getattr(g, "user_email", None)
    if email:
        return f"user:{email}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to the planner blueprints.

    Limits (per caller):
        - Plan endpoints:     120/minute (chart autosave issues many writes)
        - Sharing endpoints:  30/minute  (link issuing, permission changes)
        - Entry page:         60/minute
        - Health check:       exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in (("plans", PLAN_LIMIT), ("sharing", SHARING_LIMIT), ("entry", ENTRY_LIMIT)):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — plans: %s, sharing: %s, entry: %s",
        PLAN_LIMIT, SHARING_LIMIT, ENTRY_LIMIT,
    )
