"""
Tests for share token issuing and validation.

Covers:
  - issued token is stored under share_token_<token> with created_at + view
  - link URL carries the token as a query parameter
  - validation within 24h; expiry at exactly 24h deletes the key
  - repeated validation after expiry keeps reporting invalid
  - blank / unknown / malformed tokens
  - property store lookups turn database errors into StoreAccessError
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from orgplan.core.exceptions import StoreAccessError, TokenExpiredError, TokenInvalidError
from orgplan.services.property_store import PropertyStore
from orgplan.services.share_tokens import KEY_PREFIX, ShareTokenIssuer


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def properties():
    return PropertyStore()


@pytest.fixture()
def issuer(properties, clock):
    return ShareTokenIssuer(properties, base_url="https://orgplan.test/app", clock=clock)


def test_issue_stores_record(issuer, properties, clock):
    link = issuer.issue()

    assert link["permission"] == "view"
    assert link["url"] == f"https://orgplan.test/app?token={link['token']}"
    assert link["expires_at"] == (clock.now + timedelta(hours=24)).isoformat()
    assert properties.get(KEY_PREFIX + link["token"]) == {
        "created_at": clock.now.isoformat(),
        "permission": "view",
    }


def test_tokens_are_unique(issuer):
    assert issuer.issue()["token"] != issuer.issue()["token"]


def test_url_keeps_existing_query(properties, clock):
    issuer = ShareTokenIssuer(properties, base_url="https://orgplan.test/?lang=en", clock=clock)
    link = issuer.issue()
    assert link["url"] == f"https://orgplan.test/?lang=en&token={link['token']}"


def test_valid_just_before_expiry(issuer, clock):
    token = issuer.issue()["token"]
    clock.advance(hours=23, minutes=59)
    assert issuer.validate(token) == {"valid": True, "permission": "view"}


def test_expired_at_24_hours_and_deleted(issuer, properties, clock):
    token = issuer.issue()["token"]
    clock.advance(hours=24)

    with pytest.raises(TokenExpiredError):
        issuer.check(token)
    assert properties.get(KEY_PREFIX + token) is None


def test_repeated_validation_after_expiry(issuer, clock):
    token = issuer.issue()["token"]
    clock.advance(days=2)
    assert issuer.validate(token) == {"valid": False, "reason": "expired"}
    assert issuer.validate(token) == {"valid": False, "reason": "invalid"}
    assert issuer.validate(token)["valid"] is False


@pytest.mark.parametrize("token", [None, "", "unknown-token"])
def test_blank_or_unknown(issuer, token):
    with pytest.raises(TokenInvalidError):
        issuer.check(token)
    assert issuer.validate(token) == {"valid": False, "reason": "invalid"}


def test_malformed_record_invalid_and_removed(issuer, properties):
    properties.set(KEY_PREFIX + "broken", {"permission": "view"})
    assert issuer.validate("broken") == {"valid": False, "reason": "invalid"}
    assert properties.get(KEY_PREFIX + "broken") is None


def test_property_keys_by_prefix(properties):
    properties.set("share_token_a", {"x": 1})
    properties.set("share_token_b", {"x": 2})
    properties.set("other", 3)
    assert properties.keys("share_token_") == ["share_token_a", "share_token_b"]
    assert properties.delete("other") is True
    assert properties.delete("other") is False


def test_property_store_failures_raise_store_access_error():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    properties = PropertyStore(session=session)

    with pytest.raises(StoreAccessError):
        properties.keys("share_token_")
    with pytest.raises(StoreAccessError):
        properties.get("k")
    assert session.rollback.call_count == 2
