"""
Storage Access Sync — mirrors permission changes onto the storage layer.

The permission table is the source of truth. After a permission row is
committed, the permission store queues a ``grant`` or ``revoke`` task here;
a daemon worker thread replays it against an ``AccessGrantor`` with a fixed
retry/backoff schedule. A task that still fails after the last attempt is
logged and dropped — it never reaches the caller of the permission change.

Grantors:
    - LoggingAccessGrantor  — no ACL endpoint configured; records intent in the log
    - HttpAccessGrantor     — calls an external ACL service with requests

Usage:
    queue = AccessSyncQueue(HttpAccessGrantor(url), max_attempts=3, backoff=(1, 4))
    queue.enqueue("grant", "a@b.com", "edit")
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

# Permission level → storage role
STORAGE_ROLES = {
    "owner": "writer",
    "edit": "writer",
    "view": "reader",
}

_DEFAULT_TIMEOUT = 10


@dataclass(frozen=True)
class AccessTask:
    action: str            # "grant" | "revoke"
    email: str
    permission: str | None = None


class LoggingAccessGrantor:
    """Grantor used when no storage ACL endpoint is configured."""

    def grant(self, email: str, permission: str) -> None:
        logger.info("Storage access (log only): grant %s to %s", STORAGE_ROLES.get(permission, "reader"), email)

    def revoke(self, email: str) -> None:
        logger.info("Storage access (log only): revoke %s", email)


class HttpAccessGrantor:
    """Grantor backed by an HTTP ACL service.

    ``POST {base}/grants`` with ``{"email", "role"}`` and
    ``DELETE {base}/grants/<email>``. Any non-2xx response raises.

    Pass a custom ``session`` in tests to intercept HTTP calls.
    """

    def __init__(self, base_url: str, session: requests.Session | None = None,
                 timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def grant(self, email: str, permission: str) -> None:
        resp = self.session.post(
            f"{self.base_url}/grants",
            json={"email": email, "role": STORAGE_ROLES.get(permission, "reader")},
            timeout=self.timeout,
        )
        resp.raise_for_status()

    def revoke(self, email: str) -> None:
        resp = self.session.delete(
            f"{self.base_url}/grants/{quote(email)}",
            timeout=self.timeout,
        )
        # Already absent counts as revoked.
        if resp.status_code != 404:
            resp.raise_for_status()


class AccessSyncQueue:
    """Background retry queue for storage-access grant/revoke tasks.

    With ``eager=True`` tasks run inline in ``enqueue`` (testing); failures
    are still swallowed after the retry schedule.
    """

    def __init__(self, grantor, *, max_attempts: int = 3, backoff=(1.0, 4.0, 16.0),
                 eager: bool = False, sleep=time.sleep) -> None:
        self.grantor = grantor
        self.max_attempts = max(1, max_attempts)
        self.backoff = tuple(backoff) or (0.0,)
        self.eager = eager
        self._sleep = sleep
        self._queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self.failed: list[AccessTask] = []

    def enqueue(self, action: str, email: str, permission: str | None = None) -> None:
        if action not in ("grant", "revoke"):
            raise ValueError(f"Unknown access action {action!r}")
        task = AccessTask(action=action, email=email, permission=permission)
        if self.eager:
            self.run_task(task)
            return
        self._ensure_worker()
        self._queue.put(task)

    def run_task(self, task: AccessTask) -> bool:
        """Run *task* with retries. Returns False when every attempt failed."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                if task.action == "grant":
                    self.grantor.grant(task.email, task.permission)
                else:
                    self.grantor.revoke(task.email)
                logger.info("Storage access %s for %s applied (attempt %d)", task.action, task.email, attempt)
                return True
            except Exception as exc:
                logger.warning(
                    "Storage access %s for %s failed (attempt %d/%d): %s",
                    task.action, task.email, attempt, self.max_attempts, exc,
                )
                if attempt < self.max_attempts:
                    delay = self.backoff[min(attempt - 1, len(self.backoff) - 1)]
                    if delay:
                        self._sleep(delay)
        logger.error("Giving up on storage access %s for %s", task.action, task.email)
        self.failed.append(task)
        return False

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(
                target=self._work, name="access-sync", daemon=True,
            )
            self._thread.start()

    def _work(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is None:
                    return
                self.run_task(task)
            finally:
                self._queue.task_done()

    def join(self) -> None:
        """Block until every queued task has been processed."""
        self._queue.join()

    def shutdown(self) -> None:
        with self._lock:
            thread = self._thread
        if thread is not None and thread.is_alive():
            self._queue.put(None)
            thread.join()
