"""
Permission Store — who may view, edit or administer sharing.

Entries live in the hidden, protected ``_Permissions`` table:

    row 1    header    Email | Name | Permission | Added | Added By
    row 2+   one entry per user

The table is created on first access and seeded with the bootstrap owner.
Anyone without an entry is an implicit ``view`` user. Add/update/remove
require the *caller* to hold ``owner`` or ``edit``; the two levels are
equivalent for management.

Every committed change is mirrored to the storage layer through the access
sync queue. That mirror is best-effort and never affects the result here.

Usage:
    perms = PermissionStore(store, access_sync, caller_email="me@corp.com",
                            bootstrap_owner="boss@corp.com")
    perms.add("a@corp.com", "edit")
"""

import logging
import re
from datetime import datetime, timezone

from orgplan.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

PERMISSIONS_TABLE = "_Permissions"
PERMISSION_HEADERS = ["Email", "Name", "Permission", "Added", "Added By"]
FIRST_ENTRY_ROW = 2

PERMISSION_LEVELS = ("owner", "edit", "view")
MANAGER_LEVELS = {"owner", "edit"}
DEFAULT_PERMISSION = "view"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def display_name(email: str) -> str:
    """Name shown for an entry: the local part of the email address."""
    return email.split("@", 1)[0] if email else ""


def can_manage(permission: str | None) -> bool:
    return permission in MANAGER_LEVELS


def _clean_email(email) -> str:
    return (email or "").strip().lower() if isinstance(email, str) else ""


class PermissionStore:
    """Permission entries keyed by email, stored in a tabular store."""

    def __init__(self, store, access_sync, *, caller_email=None, bootstrap_owner=None, clock=None):
        self.store = store
        self.access_sync = access_sync
        self.caller_email = _clean_email(caller_email)
        self.bootstrap_owner = _clean_email(bootstrap_owner)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Table ────────────────────────────────────────────────────────────

    def _ensure_table(self) -> None:
        if self.store.has_table(PERMISSIONS_TABLE):
            return
        self.store.create_table(PERMISSIONS_TABLE, hidden=True, protected=True)
        self.store.write_range(PERMISSIONS_TABLE, 1, 1, [PERMISSION_HEADERS])
        owner = self.bootstrap_owner or self.caller_email
        if owner:
            self.store.append_row(PERMISSIONS_TABLE, self._row(owner, "owner", added_by=owner))
            logger.info("Created permission table with bootstrap owner %s", owner)
        else:
            logger.warning("Created permission table without an owner; no bootstrap identity known")

    def _row(self, email: str, permission: str, added_by: str) -> list:
        return [email, display_name(email), permission, self._clock().isoformat(), added_by]

    def _read_rows(self) -> list[tuple[int, dict]]:
        """Return ``(row_index, entry)`` pairs from top to bottom."""
        self._ensure_table()
        last = self.store.last_row(PERMISSIONS_TABLE)
        if last < FIRST_ENTRY_ROW:
            return []
        grid = self.store.read_range(
            PERMISSIONS_TABLE, FIRST_ENTRY_ROW, 1, last - FIRST_ENTRY_ROW + 1, len(PERMISSION_HEADERS),
        )
        rows = []
        for offset, cells in enumerate(grid):
            email = _clean_email(str(cells[0]))
            if not email:
                continue
            permission = str(cells[2]).strip().lower()
            rows.append((FIRST_ENTRY_ROW + offset, {
                "email": email,
                "name": str(cells[1]) or display_name(email),
                "permission": permission if permission in PERMISSION_LEVELS else DEFAULT_PERMISSION,
                "added_at": str(cells[3]) or None,
                "added_by": str(cells[4]) or None,
            }))
        return rows

    # ── Queries ──────────────────────────────────────────────────────────

    def list_entries(self) -> list[dict]:
        return [entry for _, entry in self._read_rows()]

    def current_user(self) -> dict:
        email = self.caller_email
        permission = DEFAULT_PERMISSION
        if email:
            for _, entry in self._read_rows():
                if entry["email"] == email:
                    permission = entry["permission"]
                    break
        return {
            "email": email,
            "name": display_name(email),
            "permission": permission,
            "is_owner": permission == "owner",
        }

    # ── Mutations ────────────────────────────────────────────────────────

    def _require_manager(self, action: str) -> dict:
        caller = self.current_user()
        if not can_manage(caller["permission"]):
            logger.warning("Denied %s for %s (permission=%s)", action, caller["email"] or "anonymous",
                           caller["permission"])
            raise AuthorizationError(action, caller["permission"])
        return caller

    @staticmethod
    def _validate_permission(permission) -> str:
        level = permission.strip().lower() if isinstance(permission, str) else ""
        if level not in PERMISSION_LEVELS:
            raise ValidationError(
                f"Permission must be one of: {', '.join(PERMISSION_LEVELS)}",
                details={"permission": permission},
            )
        return level

    def add(self, email, permission=DEFAULT_PERMISSION) -> dict:
        target = _clean_email(email)
        if not EMAIL_PATTERN.match(target):
            raise ValidationError("Invalid email address", details={"email": email})
        level = self._validate_permission(permission)
        caller = self._require_manager("add_user")

        if any(entry["email"] == target for _, entry in self._read_rows()):
            raise ConflictError(resource="Permission entry", field="email", value=target)

        row = self._row(target, level, added_by=caller["email"])
        self.store.append_row(PERMISSIONS_TABLE, row)
        logger.info("%s added %s as %s", caller["email"], target, level)
        self.access_sync.enqueue("grant", target, level)
        return dict(zip(("email", "name", "permission", "added_at", "added_by"), row))

    def update(self, email, permission) -> dict:
        target = _clean_email(email)
        level = self._validate_permission(permission)
        caller = self._require_manager("update_user")

        for row_index, entry in self._read_rows():
            if entry["email"] == target:
                self.store.write_range(PERMISSIONS_TABLE, row_index, 3, [[level]])
                entry["permission"] = level
                logger.info("%s changed %s to %s", caller["email"], target, level)
                self.access_sync.enqueue("grant", target, level)
                return entry
        raise NotFoundError(resource="Permission entry", resource_id=target)

    def remove(self, email) -> dict:
        target = _clean_email(email)
        caller = self._require_manager("remove_user")

        removed = 0
        # Bottom-up so deleting a row never shifts one that is still to be visited.
        for row_index, entry in reversed(self._read_rows()):
            if entry["email"] == target:
                self.store.delete_row(PERMISSIONS_TABLE, row_index)
                removed += 1
        if not removed:
            raise NotFoundError(resource="Permission entry", resource_id=target)
        logger.info("%s removed %s (%d row(s))", caller["email"], target, removed)
        self.access_sync.enqueue("revoke", target)
        return {"email": target, "removed": removed}
