"""
Share Token Issuer — anonymous, time-boxed view links.

A token is an unguessable ``secrets.token_urlsafe`` string stored under
``share_token_<token>`` as ``{"created_at": <iso>, "permission": "view"}``.
No expiry is stored: age is computed at lookup and a token older than
``TOKEN_TTL`` is deleted the first time it fails validation. There is no
background sweep.

Usage:
    issuer = ShareTokenIssuer(PropertyStore(), base_url="https://org.example/")
    link = issuer.issue()              # {"token": ..., "url": ..., ...}
    issuer.validate(link["token"])     # {"valid": True, "permission": "view"}
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode, urlsplit, urlunsplit

from orgplan.core.exceptions import TokenExpiredError, TokenInvalidError

logger = logging.getLogger(__name__)

KEY_PREFIX = "share_token_"
TOKEN_TTL = timedelta(hours=24)
SHARE_PERMISSION = "view"


def _token_url(base_url: str, token: str) -> str:
    parts = urlsplit(base_url)
    query = "&".join(q for q in (parts.query, urlencode({"token": token})) if q)
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", query, ""))


class ShareTokenIssuer:
    """Issue and validate share tokens kept in a property store."""

    def __init__(self, properties, base_url: str, clock=None):
        self.properties = properties
        self.base_url = base_url
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def issue(self) -> dict:
        token = secrets.token_urlsafe(24)
        created_at = self._clock()
        self.properties.set(KEY_PREFIX + token, {
            "created_at": created_at.isoformat(),
            "permission": SHARE_PERMISSION,
        })
        logger.info("Issued share token %s… (permission=%s)", token[:6], SHARE_PERMISSION)
        return {
            "token": token,
            "url": _token_url(self.base_url, token),
            "permission": SHARE_PERMISSION,
            "expires_at": (created_at + TOKEN_TTL).isoformat(),
        }

    def check(self, token: str | None) -> dict:
        """Return the stored record or raise ``TokenInvalidError`` / ``TokenExpiredError``."""
        if not token:
            raise TokenInvalidError("Share token is missing")
        key = KEY_PREFIX + token
        record = self.properties.get(key)
        if not record:
            raise TokenInvalidError("Share token is unknown")
        try:
            created_at = datetime.fromisoformat(record["created_at"])
        except (KeyError, TypeError, ValueError):
            self.properties.delete(key)
            raise TokenInvalidError("Share token record is malformed")
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        age = self._clock() - created_at
        if age >= TOKEN_TTL:
            self.properties.delete(key)
            logger.info("Share token %s… expired after %s; deleted", token[:6], age)
            raise TokenExpiredError(token, age.total_seconds())
        return record

    def validate(self, token: str | None) -> dict:
        try:
            record = self.check(token)
        except TokenExpiredError:
            return {"valid": False, "reason": "expired"}
        except TokenInvalidError:
            return {"valid": False, "reason": "invalid"}
        return {"valid": True, "permission": record.get("permission", SHARE_PERMISSION)}
