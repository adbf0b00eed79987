"""
Tests for the plan service boundary.

Covers:
  - every result is {"success", "data"} or {"success", "error", "error_type"}
  - gates: viewers read but cannot save, batch update, delete or share
  - share-link visitors act as view regardless of identity
  - error kinds: validation, authorization, not_found, conflict, store
  - unexpected exceptions are reported as store failures
"""

from datetime import date

import pytest

from orgplan.core.exceptions import StoreAccessError
from orgplan.services.permission_store import PermissionStore
from orgplan.services.plan_service import PlanService
from orgplan.services.property_store import PropertyStore
from orgplan.services.share_tokens import ShareTokenIssuer

OWNER = "owner@example.com"


class NullSync:
    def enqueue(self, *args, **kwargs):
        pass


@pytest.fixture()
def service_for(store, repo):
    def _build(caller, via_share_link=False):
        perms = PermissionStore(store, NullSync(), caller_email=caller, bootstrap_owner=OWNER)
        tokens = ShareTokenIssuer(PropertyStore(), base_url="https://orgplan.test/")
        return PlanService(repo, perms, tokens, via_share_link=via_share_link,
                           today=lambda: date(2026, 4, 1))
    return _build


@pytest.fixture()
def owner_svc(service_for):
    return service_for(OWNER)


@pytest.fixture()
def viewer_svc(service_for, owner_svc):
    owner_svc.add_shared_user("viewer@corp.com", "view")
    return service_for("viewer@corp.com")


# ═══════════════════════════════════════════════════════════════
# Plans
# ═══════════════════════════════════════════════════════════════


class TestPlans:
    def test_list_all_plans_includes_user(self, owner_svc, make_plan):
        owner_svc.save_plan("current", make_plan())
        result = owner_svc.list_all_plans()
        assert result["success"] is True
        assert set(result["data"]["plans"]) == {"current"}
        assert result["data"]["user"]["permission"] == "owner"
        assert result["data"]["user"]["via_share_link"] is False

    def test_save_and_get(self, owner_svc, make_plan):
        saved = owner_svc.save_plan("q1", make_plan())
        assert saved == {"success": True, "data": {"id": "q1", "node_count": 3}}
        assert owner_svc.get_plan("q1")["data"]["name"] == "Q1 proposal"

    def test_viewer_can_read_not_write(self, owner_svc, viewer_svc, make_plan):
        owner_svc.save_plan("q1", make_plan())
        assert viewer_svc.get_plan("q1")["success"] is True

        result = viewer_svc.save_plan("q1", make_plan(name="Hijack"))
        assert result["success"] is False
        assert result["error_type"] == "authorization"
        assert owner_svc.get_plan("q1")["data"]["name"] == "Q1 proposal"

        assert viewer_svc.batch_update_nodes("q1", [{"id": "n1", "name": "X"}])["error_type"] == "authorization"
        assert viewer_svc.delete_plan("q1")["error_type"] == "authorization"

    def test_editor_saves_and_deletes(self, owner_svc, service_for, make_plan):
        owner_svc.add_shared_user("ed@corp.com", "edit")
        editor = service_for("ed@corp.com")
        assert editor.save_plan("q1", make_plan())["success"] is True
        assert editor.delete_plan("q1") == {"success": True, "data": {"id": "q1"}}

    def test_delete_current_is_validation_error(self, owner_svc, make_plan):
        owner_svc.save_plan("current", make_plan())
        result = owner_svc.delete_plan("current")
        assert result["success"] is False
        assert result["error_type"] == "validation"

    def test_missing_plan_is_not_found(self, owner_svc):
        assert owner_svc.get_plan("ghost")["error_type"] == "not_found"
        assert owner_svc.export_csv("ghost")["error_type"] == "not_found"

    def test_invalid_payload_is_validation(self, owner_svc):
        result = owner_svc.save_plan("q1", ["not", "a", "dict"])
        assert result["error_type"] == "validation"

    def test_export_csv(self, viewer_svc, owner_svc, make_plan):
        owner_svc.save_plan("q1", make_plan())
        result = viewer_svc.export_csv("q1")
        assert result["data"]["filename"] == "Q1 proposal_20260401.csv"
        assert result["data"]["csv"].startswith("ID,Name,Position")

    def test_batch_update(self, owner_svc, make_plan):
        owner_svc.save_plan("q1", make_plan())
        result = owner_svc.batch_update_nodes("q1", [{"id": "n3", "parent_id": "n1"}, {"id": "zz"}])
        assert result["data"] == {"id": "q1", "updated": 1, "ignored": 1}


# ═══════════════════════════════════════════════════════════════
# Sharing
# ═══════════════════════════════════════════════════════════════


class TestSharing:
    def test_current_user(self, viewer_svc):
        data = viewer_svc.current_user()["data"]
        assert data["email"] == "viewer@corp.com"
        assert data["permission"] == "view"

    def test_share_link_visitor_is_view(self, service_for):
        visitor = service_for(None, via_share_link=True)
        user = visitor.current_user()["data"]
        assert user["permission"] == "view"
        assert user["via_share_link"] is True
        assert visitor.generate_share_link()["error_type"] == "authorization"

    def test_list_shared_users_requires_manager(self, owner_svc, viewer_svc):
        assert [e["email"] for e in owner_svc.list_shared_users()["data"]] == [OWNER, "viewer@corp.com"]
        assert viewer_svc.list_shared_users()["error_type"] == "authorization"

    def test_duplicate_add_is_conflict(self, owner_svc):
        owner_svc.add_shared_user("a@corp.com", "view")
        result = owner_svc.add_shared_user("a@corp.com", "view")
        assert result["success"] is False
        assert result["error_type"] == "conflict"

    def test_bad_email_is_validation(self, owner_svc):
        result = owner_svc.add_shared_user("not-an-email", "view")
        assert result["error_type"] == "validation"
        assert result["details"] == {"email": "not-an-email"}

    def test_update_and_remove(self, owner_svc):
        owner_svc.add_shared_user("a@corp.com", "view")
        assert owner_svc.update_user_permission("a@corp.com", "edit")["data"]["permission"] == "edit"
        assert owner_svc.remove_shared_user("a@corp.com")["data"]["removed"] == 1
        assert owner_svc.remove_shared_user("a@corp.com")["error_type"] == "not_found"

    def test_generate_share_link(self, owner_svc):
        data = owner_svc.generate_share_link()["data"]
        assert data["url"].startswith("https://orgplan.test/?token=")
        assert data["permission"] == "view"


# ═══════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════


def test_store_failure_reported(owner_svc, repo, monkeypatch):
    def broken():
        raise StoreAccessError("backend offline")

    monkeypatch.setattr(repo, "list_all", broken)
    result = owner_svc.list_all_plans()
    assert result == {
        "success": False,
        "error": "Storage unavailable: backend offline",
        "error_type": "store",
    }


def test_unexpected_error_reported_as_store(owner_svc, repo, monkeypatch):
    def boom(plan_id):
        raise KeyError("unexpected")

    monkeypatch.setattr(repo, "get", boom)
    result = owner_svc.get_plan("q1")
    assert result["success"] is False
    assert result["error_type"] == "store"
