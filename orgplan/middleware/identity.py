"""
Identity Middleware — resolves who is calling and whether a share link is used.

The hosting platform authenticates users; this hook only reads what it
passes along:

  1. ``Authorization: Bearer <jwt>``  HS256, signed with IDENTITY_JWT_SECRET,
                                      ``email`` claim
  2. IDENTITY_HEADER (e.g. ``X-Forwarded-Email``) set by a trusted proxy.
     Off unless configured, and never read when IDENTITY_JWT_SECRET is set.

Results: ``g.user_email`` (lower-cased, or None for anonymous callers),
``g.share_token`` and ``g.share_permission``.

A share token arrives as ``?token=`` on the entry URL or as the
``X-Share-Token`` header on API calls. An unknown or expired token stops the
request with a generic 403 — no hint which of the two it was.
"""

import logging

import jwt as pyjwt
from flask import g, jsonify, request

from orgplan.core.exceptions import StoreAccessError, TokenExpiredError, TokenInvalidError
from orgplan.services.context import build_token_issuer, planner_extension

logger = logging.getLogger(__name__)

# Paths that skip identity resolution entirely
IDENTITY_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)

ACCESS_DENIED_UI = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Access denied</title></head>
<body style="font-family:system-ui;margin:40px;color:#2d3748">
<h1>Access denied</h1>
<p>This link is not valid. Ask the plan owner for a new one.</p>
</body>
</html>
"""


def _email_from_bearer(secret):
    auth_header = request.headers.get("Authorization", "")
    if not secret or not auth_header.startswith("Bearer "):
        return None
    try:
        payload = pyjwt.decode(auth_header[7:], secret, algorithms=["HS256"])
    except pyjwt.ExpiredSignatureError:
        logger.info("Ignoring expired identity token")
        return None
    except pyjwt.InvalidTokenError as exc:
        logger.info("Ignoring invalid identity token: %s", exc)
        return None
    email = payload.get("email")
    return email if isinstance(email, str) else None


def _access_denied():
    if request.path.startswith("/api/"):
        return jsonify({"success": False, "error": "Access denied"}), 403
    return ACCESS_DENIED_UI, 403, {"Content-Type": "text/html; charset=utf-8"}


def init_identity(app):
    """Register identity resolution as a before_request hook."""

    @app.before_request
    def _resolve_identity():
        g.user_email = None
        g.share_token = None
        g.share_permission = None

        path = request.path
        for prefix in IDENTITY_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        settings = planner_extension()["settings"]
        email = _email_from_bearer(settings.identity_jwt_secret)
        if settings.identity_header and settings.identity_header in request.headers:
            if settings.identity_jwt_secret:
                logger.debug("Ignoring %s: bearer identity is configured", settings.identity_header)
            elif email is None:
                email = request.headers.get(settings.identity_header)
        g.user_email = email.strip().lower() if email and email.strip() else None

        token = request.args.get("token") or request.headers.get("X-Share-Token")
        if not token:
            return None
        g.share_token = token
        try:
            record = build_token_issuer().check(token)
        except (TokenInvalidError, TokenExpiredError) as exc:
            logger.info("Rejected share token on %s: %s", path, exc)
            return _access_denied()
        except StoreAccessError as exc:
            logger.error("Share token lookup failed: %s", exc)
            return _access_denied()
        g.share_permission = record.get("permission", "view")
        return None
