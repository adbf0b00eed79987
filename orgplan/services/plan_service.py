"""
Plan Service — the boundary used by the chart front-end.

Each public method authorizes the caller, delegates to the plan repository,
permission store or share token issuer, and returns a uniform result:

    {"success": True,  "data": ...}
    {"success": False, "error": "<message>", "error_type": "<kind>"}

``error_type`` is one of validation, authorization, not_found, conflict,
store, token. Nothing raised below this layer escapes it.

Gates:
    read plans / export / current user   anyone
    save, batch update                   permission != view
    delete, sharing management, links    owner or edit

Instances are built per request (see ``orgplan.services.context``).
"""

import functools
import logging
from datetime import date

from orgplan.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StoreAccessError,
    TokenExpiredError,
    TokenInvalidError,
    ValidationError,
)
from orgplan.services.csv_export import export_filename, generate_plan_csv
from orgplan.services.permission_store import can_manage

logger = logging.getLogger(__name__)


def _failure(message: str, kind: str, details: dict | None = None) -> dict:
    result = {"success": False, "error": message, "error_type": kind}
    if details:
        result["details"] = details
    return result


def service_result(fn):
    """Wrap a service method's return value / exception into a result dict."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return {"success": True, "data": fn(self, *args, **kwargs)}
        except ValidationError as exc:
            return _failure(str(exc), "validation", exc.details)
        except AuthorizationError as exc:
            return _failure(str(exc), "authorization")
        except NotFoundError as exc:
            return _failure(str(exc), "not_found")
        except ConflictError as exc:
            return _failure(str(exc), "conflict")
        except (TokenInvalidError, TokenExpiredError) as exc:
            return _failure(str(exc), "token")
        except StoreAccessError as exc:
            logger.error("%s failed: %s", fn.__name__, exc)
            return _failure(f"Storage unavailable: {exc}", "store")
        except Exception:
            logger.exception("Unexpected failure in %s", fn.__name__)
            return _failure("Unexpected error while accessing plan storage", "store")
    return wrapper


class PlanService:
    """Authorization glue between the HTTP layer and the repositories."""

    def __init__(self, repository, permissions, tokens, *, via_share_link=False, today=None):
        self.repository = repository
        self.permissions = permissions
        self.tokens = tokens
        self.via_share_link = via_share_link
        self._today = today or date.today

    # ── Caller ───────────────────────────────────────────────────────────

    def _caller(self) -> dict:
        user = self.permissions.current_user()
        user["via_share_link"] = self.via_share_link
        return user

    def _require_editor(self, action: str) -> dict:
        user = self._caller()
        if user["permission"] == "view":
            logger.warning("Denied %s for %s (view only)", action, user["email"] or "anonymous")
            raise AuthorizationError(action, user["permission"])
        return user

    def _require_manager(self, action: str) -> dict:
        user = self._caller()
        if not can_manage(user["permission"]):
            logger.warning("Denied %s for %s (permission=%s)", action,
                           user["email"] or "anonymous", user["permission"])
            raise AuthorizationError(action, user["permission"])
        return user

    @service_result
    def current_user(self):
        return self._caller()

    # ── Plans ────────────────────────────────────────────────────────────

    @service_result
    def list_all_plans(self):
        return {"plans": self.repository.list_all(), "user": self._caller()}

    @service_result
    def get_plan(self, plan_id):
        return self.repository.get(plan_id)

    @service_result
    def save_plan(self, plan_id, plan_data):
        self._require_editor("save_plan")
        return self.repository.save(plan_id, plan_data)

    @service_result
    def delete_plan(self, plan_id):
        self._require_manager("delete_plan")
        return self.repository.delete(plan_id)

    @service_result
    def batch_update_nodes(self, plan_id, updates):
        self._require_editor("batch_update_nodes")
        return self.repository.batch_update(plan_id, updates)

    @service_result
    def export_csv(self, plan_id):
        plan = self.repository.get(plan_id)
        return {
            "csv": generate_plan_csv(plan),
            "filename": export_filename(plan, self._today()),
        }

    # ── Sharing ──────────────────────────────────────────────────────────

    @service_result
    def list_shared_users(self):
        self._require_manager("list_shared_users")
        return self.permissions.list_entries()

    @service_result
    def add_shared_user(self, email, permission="view"):
        return self.permissions.add(email, permission)

    @service_result
    def update_user_permission(self, email, permission):
        return self.permissions.update(email, permission)

    @service_result
    def remove_shared_user(self, email):
        return self.permissions.remove(email)

    @service_result
    def generate_share_link(self):
        self._require_manager("generate_share_link")
        return self.tokens.issue()
